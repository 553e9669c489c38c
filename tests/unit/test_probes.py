import json
import subprocess
import sys
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from slowdiag_telemetry.cache import CadenceCache, ProbeError
from slowdiag_telemetry.models import IpmiSensors, SensorStatus
from slowdiag_telemetry.probes import (
    IpmitoolProbe,
    SmartctlProbe,
    find_tool,
    parse_lsblk_disks,
    parse_sensor_list,
    parse_smartctl_json,
    run_tool,
)


SMARTCTL_OK = json.dumps(
    {
        "device": {"name": "/dev/sda"},
        "smart_status": {"passed": True},
        "temperature": {"current": 37},
        "ata_smart_attributes": {
            "table": [
                {"id": 5, "name": "Reallocated_Sector_Ct", "raw": {"value": 8, "string": "8"}},
                {"id": 197, "name": "Current_Pending_Sector", "raw": {"value": 2, "string": "2"}},
            ]
        },
    }
)

SENSOR_LIST = """CPU1 Temp        | 48.000     | degrees C  | ok    | na        | 5.000     | 10.000    | 95.000    | 100.000   | na
DIMMA1 Temp      | 41.000     | degrees C  | ok    | na        | 5.000     | 10.000    | 85.000    | 90.000    | na
DIMMB1 Temp      | 83.000     | degrees C  | nc    | na        | 5.000     | 10.000    | 80.000    | 90.000    | na
DIMMC1 Temp      | na         | degrees C  | na    | na        | na        | na        | na        | na        | na
MEM Voltage      | 1.200      | Volts      | ok    | na        | na        | na        | na        | na        | na
FAN1             | 3400.000   | RPM        | ok    | na        | 300.000   | 500.000   | na        | na        | na
"""


def _done(args, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args, returncode, stdout, stderr)


class _FakeRunner:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, args):
        self.calls.append(list(args))
        return self.responses(list(args))


class SmartctlParseTests(unittest.TestCase):
    def test_full_document(self):
        dev = parse_smartctl_json(SMARTCTL_OK, "/dev/sda")
        self.assertTrue(dev.health_passed)
        self.assertEqual(dev.temperature, 37.0)
        self.assertEqual(dev.reallocated_sectors, 8)
        self.assertEqual(dev.pending_sectors, 2)

    def test_schema_mismatch_leaves_fields_absent(self):
        doc = {"smart_status": {"passed": "yes"}, "temperature": "hot", "ata_smart_attributes": []}
        dev = parse_smartctl_json(json.dumps(doc), "/dev/sdb")
        self.assertIsNone(dev.health_passed)
        self.assertIsNone(dev.temperature)
        self.assertIsNone(dev.reallocated_sectors)
        self.assertIsNone(dev.pending_sectors)

    def test_nvme_document_without_attribute_table(self):
        doc = {"smart_status": {"passed": False}, "temperature": {"current": 51}}
        dev = parse_smartctl_json(json.dumps(doc), "/dev/nvme0n1")
        self.assertFalse(dev.health_passed)
        self.assertEqual(dev.temperature, 51.0)
        self.assertIsNone(dev.reallocated_sectors)

    def test_invalid_json(self):
        self.assertIsNone(parse_smartctl_json("smartctl 7.3 ...", "/dev/sda"))
        self.assertIsNone(parse_smartctl_json("[1, 2]", "/dev/sda"))

    def test_lsblk_whole_disks(self):
        text = "sda   disk\nsr0   rom\nnvme0n1 disk\nloop0 loop\n"
        self.assertEqual(parse_lsblk_disks(text), ["/dev/sda", "/dev/nvme0n1"])


class IpmiParseTests(unittest.TestCase):
    def test_sensor_list_drops_non_numeric_rows(self):
        sensors = parse_sensor_list(SENSOR_LIST)
        names = [s.name for s in sensors]
        self.assertIn("DIMMA1 Temp", names)
        self.assertNotIn("DIMMC1 Temp", names)
        self.assertEqual(len(sensors), 5)

    def test_dimm_filter_status_and_max(self):
        ipmi = IpmiSensors(available=True, sensors=tuple(parse_sensor_list(SENSOR_LIST)))
        self.assertEqual([s.name for s in ipmi.dimm_sensors()], ["DIMMA1 Temp", "DIMMB1 Temp"])
        self.assertIs(ipmi.worst_dimm_status(), SensorStatus.NON_CRITICAL)
        self.assertEqual(ipmi.max_dimm_temp(), 83.0)
        self.assertEqual(ipmi.format_dimms(), "DIMMA1 Temp:41C[ok], DIMMB1 Temp:83C[nc]")

    def test_no_dimm_sensors(self):
        ipmi = IpmiSensors(available=True)
        self.assertIs(ipmi.worst_dimm_status(), SensorStatus.NOT_AVAILABLE)
        self.assertIsNone(ipmi.max_dimm_temp())
        self.assertIsNone(ipmi.format_dimms())


def _which_in_sbin(name, path=None):
    return f"/usr/sbin/{name}"


@mock.patch("slowdiag_telemetry.probes.shutil.which", side_effect=_which_in_sbin)
class ProbeCallTests(unittest.TestCase):
    def test_smartctl_probe_reads_each_disk(self, _which):
        def respond(args):
            if args[0] == "lsblk":
                return _done(args, stdout="sda disk\nsdb disk\nsr0 rom\n")
            if args[-1] == "/dev/sdb":
                # bit 1: device open failed
                return _done(args, returncode=2)
            return _done(args, returncode=4, stdout=SMARTCTL_OK)

        runner = _FakeRunner(respond)
        health = SmartctlProbe(runner=runner, elevated=True)()
        self.assertTrue(health.available)
        self.assertEqual([d.device for d in health.devices], ["/dev/sda"])
        self.assertEqual(health.max_temperature(), 37.0)
        self.assertIn(["/usr/sbin/smartctl", "-a", "-j", "/dev/sda"], runner.calls)

    def test_smartctl_uses_sudo_when_not_root(self, _which):
        def respond(args):
            if args[0] == "lsblk":
                return _done(args, stdout="sda disk\n")
            return _done(args, stdout=SMARTCTL_OK)

        runner = _FakeRunner(respond)
        SmartctlProbe(runner=runner, elevated=False)()
        self.assertEqual(runner.calls[0], ["sudo", "-n", "true"])
        self.assertIn(["sudo", "-n", "/usr/sbin/smartctl", "-a", "-j", "/dev/sda"], runner.calls)

    def test_lsblk_failure_is_probe_error(self, _which):
        runner = _FakeRunner(lambda args: _done(args, returncode=1))
        with self.assertRaises(ProbeError):
            SmartctlProbe(runner=runner, elevated=True)()

    def test_no_privileges_spawns_nothing(self, _which):
        def respond(args):
            return _done(args, returncode=1)

        runner = _FakeRunner(respond)
        health = SmartctlProbe(runner=runner, elevated=False)()
        self.assertFalse(health.available)
        # only the sudo check ran
        self.assertEqual(runner.calls, [["sudo", "-n", "true"]])

    def test_ipmitool_probe(self, _which):
        runner = _FakeRunner(lambda args: _done(args, stdout=SENSOR_LIST))
        sensors = IpmitoolProbe(runner=runner, elevated=True)()
        self.assertTrue(sensors.available)
        self.assertEqual(runner.calls, [["/usr/sbin/ipmitool", "sensor", "list"]])
        self.assertEqual(sensors.max_dimm_temp(), 83.0)

    def test_ipmitool_failure_is_probe_error(self, _which):
        runner = _FakeRunner(lambda args: _done(args, returncode=1, stderr="Could not open device"))
        with self.assertRaises(ProbeError):
            IpmitoolProbe(runner=runner, elevated=True)()


# a BMC row with a stray Latin-1 degree sign
_LATIN1_SENSOR_ROW = "import sys; sys.stdout.buffer.write(b'DIMMA1 Temp \\xb0 | 45.000 | degrees C | ok\\n')"


class NonUtf8OutputTests(unittest.TestCase):
    def test_run_tool_replaces_invalid_bytes(self):
        result = run_tool([sys.executable, "-c", _LATIN1_SENSOR_ROW])
        self.assertEqual(result.returncode, 0)
        self.assertIn("\ufffd", result.stdout)

    @mock.patch("slowdiag_telemetry.probes.shutil.which", side_effect=_which_in_sbin)
    def test_ipmitool_reading_survives_latin1_byte(self, _which):
        def runner(args):
            return run_tool([sys.executable, "-c", _LATIN1_SENSOR_ROW])

        cache = CadenceCache(IpmitoolProbe(runner=runner, elevated=True), IpmiSensors(available=False), cadence=3)
        sensors = cache.tick()
        self.assertTrue(sensors.available)
        self.assertEqual(len(sensors.sensors), 1)
        self.assertEqual(sensors.sensors[0].value, 45.0)
        self.assertIn("\ufffd", sensors.sensors[0].name)


class FindToolTests(unittest.TestCase):
    def test_found_on_path(self):
        with mock.patch("slowdiag_telemetry.probes.shutil.which", return_value="/usr/bin/ipmitool") as which:
            self.assertEqual(find_tool("ipmitool"), "/usr/bin/ipmitool")
        which.assert_called_once_with("ipmitool")

    def test_falls_back_to_sbin_dirs(self):
        def which(name, path=None):
            return None if path is None else f"/usr/sbin/{name}"

        with mock.patch("slowdiag_telemetry.probes.shutil.which", side_effect=which) as patched:
            self.assertEqual(find_tool("smartctl"), "/usr/sbin/smartctl")
        self.assertIn("/usr/sbin", patched.call_args.kwargs["path"])
        self.assertIn("/sbin", patched.call_args.kwargs["path"])

    def test_ipmitool_runs_from_sbin_when_missing_from_path(self):
        def which(name, path=None):
            return None if path is None else f"/sbin/{name}"

        runner = _FakeRunner(lambda args: _done(args, stdout=SENSOR_LIST))
        with mock.patch("slowdiag_telemetry.probes.shutil.which", side_effect=which):
            sensors = IpmitoolProbe(runner=runner, elevated=True)()
        self.assertTrue(sensors.available)
        self.assertEqual(runner.calls, [["/sbin/ipmitool", "sensor", "list"]])


class MissingToolTests(unittest.TestCase):
    def test_tool_not_installed(self):
        runner = _FakeRunner(lambda args: _done(args))
        with mock.patch("slowdiag_telemetry.probes.shutil.which", return_value=None):
            self.assertFalse(SmartctlProbe(runner=runner, elevated=True)().available)
            self.assertFalse(IpmitoolProbe(runner=runner, elevated=True)().available)
        self.assertEqual(runner.calls, [])


if __name__ == "__main__":
    unittest.main()
