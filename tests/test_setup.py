"""Test that the project setup is working correctly."""

import vybe_alert_engine


def test_version() -> None:
    """Test that version is defined."""
    assert vybe_alert_engine.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from vybe_alert_engine import alerter
    from vybe_alert_engine import detector
    from vybe_alert_engine import ingestor
    from vybe_alert_engine import profiler
    from vybe_alert_engine import storage
    from vybe_alert_engine import tracker

    # Just verify imports work
    assert ingestor is not None
    assert profiler is not None
    assert detector is not None
    assert alerter is not None
    assert storage is not None
    assert tracker is not None
