import pytest

from scripts.run_pipeline_stage import _parse_args


def test_compact_flag_is_accepted_after_the_stage() -> None:
    args = _parse_args(["classify", "r1", "--compact", "--retry-failed"])

    assert args.stage == "classify"
    assert args.review_id == "r1"
    assert args.compact is True
    assert args.retry_failed is True


def test_output_is_indented_by_default() -> None:
    args = _parse_args(["dispatch", "--limit", "5"])

    assert args.compact is False
    assert args.limit == 5


def test_ingest_rejects_unknown_platform() -> None:
    assert _parse_args(["ingest", "b1", "yelp", "--force"]).force is True
    with pytest.raises(SystemExit):
        _parse_args(["ingest", "b1", "myspace"])
