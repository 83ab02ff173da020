import sys
import pytest
from unittest.mock import patch

import run_tests


@pytest.mark.unit
class TestRunTests:
    """Test suite for the marker-based test runner."""

    def test_registered_markers(self):
        markers = run_tests.registered_markers()

        assert set(markers) == {
            "unit", "api", "voucher", "cashback", "auth", "promotion", "sponsoring", "setting"
        }
        assert markers["voucher"] == "voucher lifecycle tests"

    def test_marker_expression(self):
        with patch.object(sys, "argv", ["run_tests.py", "voucher", "cashback", "-x"]):
            with patch.object(run_tests.subprocess, "call", return_value=0) as call:
                assert run_tests.main() == 0

        cmd = call.call_args.args[0]
        assert cmd[:3] == [sys.executable, "-m", "pytest"]
        assert cmd[3:] == ["-m", "voucher or cashback", "-x"]

    def test_unknown_marker(self):
        with patch.object(sys, "argv", ["run_tests.py", "billing"]):
            with patch.object(run_tests.subprocess, "call") as call:
                with pytest.raises(SystemExit) as exc_info:
                    run_tests.main()

        assert exc_info.value.code == 2
        call.assert_not_called()
