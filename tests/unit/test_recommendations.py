import sys
import unittest
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from slowdiag_core.recommendations import CHECKS, Recommendation, evaluate, iowait_percent
from slowdiag_core.thresholds import Band, Severity, Thresholds
from slowdiag_telemetry.models import (
    CpuCounters,
    CpuMetrics,
    IpmiSummary,
    MemInfo,
    MemoryMetrics,
    MetricsSnapshot,
    NetCounters,
    PsiInfo,
    SensorStatus,
    SmartSummary,
    SystemMetrics,
    TemperatureMetrics,
    TemperatureReading,
    VmCounters,
)


def quiet_snapshot() -> MetricsSnapshot:
    """A healthy host: every check should stay silent."""
    return MetricsSnapshot(
        timestamp=1_700_000_000.0,
        datetime="2023-11-14T22:13:20.000Z",
        memory=MemoryMetrics(16384, 4096, 8192, 12000, 2048, 0, MemInfo(dirty=12)),
        cpu=CpuMetrics(12.0, 8, 0.5, 0.4, 0.3, 300),
        cpu_times=CpuCounters(user=300, system=100, idle=1590, iowait=10),
        disk_io=None,
        network=NetCounters(rx_bytes=1000, tx_bytes=1000),
        vm=VmCounters(pgfault=400, pgmajfault=2),
        pressure=PsiInfo(io_some_avg10=0.5, mem_some_avg10=0.0),
        temperatures=TemperatureMetrics(
            cpu=TemperatureReading(48.0, "coretemp"),
            max_celsius=48.0,
            dimm=TemperatureReading(40.0, "jc42 hwmon"),
            dimm_avg_celsius=40.0,
            dimm_details="DIMM0:40.0",
            disk=TemperatureReading(35.0, "nvme hwmon"),
            disk_details="nvme0:35.0",
        ),
        system=SystemMetrics(uptime_secs=100.0, fds=None),
        smart=SmartSummary(available=True, all_passed=True, reallocated_sectors=0, pending_sectors=0),
        ipmi=IpmiSummary(available=True, dimm_temp_max=41.0, dimm_status=SensorStatus.OK, dimm_details="DIMMA1:41C[ok]"),
    )


def _with_memory(snap: MetricsSnapshot, available_mb: int) -> MetricsSnapshot:
    return replace(snap, memory=replace(snap.memory, available_mb=available_mb))


def _with_iowait(snap: MetricsSnapshot, iowait: int, rest: int) -> MetricsSnapshot:
    # user+system+idle == rest
    return replace(snap, cpu_times=CpuCounters(user=rest // 2, system=0, idle=rest - rest // 2, iowait=iowait))


def _titles(findings: list[Recommendation]) -> list[str]:
    return [r.title for r in findings]


class EvaluateTests(unittest.TestCase):
    def test_healthy_host_has_no_findings(self):
        self.assertEqual(evaluate(quiet_snapshot()), [])

    def test_absent_data_is_skipped(self):
        snap = replace(
            quiet_snapshot(),
            memory=MemoryMetrics(None, None, None, None, None, None, None),
            cpu=CpuMetrics(None, None, None, None, None, None),
            cpu_times=None,
            network=None,
            vm=None,
            pressure=PsiInfo(),
            temperatures=TemperatureMetrics(None, None, None, None, None, None, None),
            smart=SmartSummary(available=None),
            ipmi=IpmiSummary(available=None),
        )
        self.assertEqual(evaluate(snap), [])

    def test_low_memory_is_single_critical_finding(self):
        th = replace(Thresholds(), memory_available_mb=Band(1024, 256, low_is_bad=True))
        findings = evaluate(_with_memory(quiet_snapshot(), 200), th)
        self.assertEqual(len(findings), 1)
        self.assertIs(findings[0].severity, Severity.CRITICAL)
        self.assertEqual(findings[0].title, "Critically Low Memory")
        self.assertIn("200", findings[0].advice)

    def test_low_memory_warning_tier(self):
        findings = evaluate(_with_memory(quiet_snapshot(), 800))
        self.assertEqual(_titles(findings), ["Low Available Memory"])
        self.assertIs(findings[0].severity, Severity.WARNING)

    def test_iowait_tiers(self):
        snap = _with_iowait(quiet_snapshot(), iowait=40, rest=60)
        self.assertAlmostEqual(iowait_percent(snap), 40.0)
        findings = evaluate(snap)
        self.assertEqual(_titles(findings), ["Severe I/O Wait"])
        self.assertIs(findings[0].severity, Severity.CRITICAL)

        findings = evaluate(_with_iowait(quiet_snapshot(), iowait=25, rest=75))
        self.assertEqual(_titles(findings), ["High I/O Wait"])

    def test_iowait_on_empty_interval(self):
        snap = replace(quiet_snapshot(), cpu_times=CpuCounters())
        self.assertIsNone(iowait_percent(snap))
        self.assertEqual(evaluate(snap), [])

    def test_swap_activity_is_always_warning(self):
        snap = replace(quiet_snapshot(), vm=VmCounters(pswpin=1))
        findings = evaluate(snap)
        self.assertEqual(_titles(findings), ["Swap Activity"])
        self.assertIs(findings[0].severity, Severity.WARNING)
        self.assertIn("in:1 out:0", findings[0].advice)

    def test_pressure_tiers(self):
        snap = replace(quiet_snapshot(), pressure=PsiInfo(io_some_avg10=30.0, mem_some_avg10=12.0))
        findings = evaluate(snap)
        self.assertEqual(_titles(findings), ["High I/O Pressure", "Memory Pressure Detected"])

    def test_temperatures(self):
        temps = replace(
            quiet_snapshot().temperatures,
            cpu=TemperatureReading(90.0, "k10temp"),
            dimm=TemperatureReading(72.0, "ipmi"),
            disk=TemperatureReading(55.0, "smartctl"),
        )
        findings = evaluate(replace(quiet_snapshot(), temperatures=temps))
        self.assertEqual(_titles(findings), ["CPU Overheating", "RAM Running Warm", "Disk Running Hot"])
        self.assertIn("(ipmi)", findings[1].advice)

    def test_ipmi_status_severity(self):
        base = quiet_snapshot()
        for status, severity in (
            (SensorStatus.NON_RECOVERABLE, Severity.CRITICAL),
            (SensorStatus.CRITICAL, Severity.CRITICAL),
            (SensorStatus.NON_CRITICAL, Severity.WARNING),
        ):
            snap = replace(base, ipmi=replace(base.ipmi, dimm_status=status))
            findings = evaluate(snap)
            self.assertEqual(len(findings), 1)
            self.assertIs(findings[0].severity, severity)

    def test_smart_health(self):
        base = quiet_snapshot()
        failed = evaluate(replace(base, smart=replace(base.smart, all_passed=False)))
        self.assertEqual(_titles(failed), ["Disk Health Check Failed"])
        worn = evaluate(replace(base, smart=replace(base.smart, reallocated_sectors=4)))
        self.assertEqual(_titles(worn), ["Disk Sectors Degrading"])
        self.assertIs(worn[0].severity, Severity.WARNING)

    def test_network_errors_are_informational(self):
        findings = evaluate(replace(quiet_snapshot(), network=NetCounters(rx_errors=3)))
        self.assertEqual(_titles(findings), ["Network Errors"])
        self.assertIs(findings[0].severity, Severity.INFO)

    def test_faults_and_dirty_pages(self):
        snap = replace(
            quiet_snapshot(),
            vm=VmCounters(pgmajfault=150),
            memory=replace(quiet_snapshot().memory, info=MemInfo(dirty=2048)),
        )
        self.assertEqual(_titles(evaluate(snap)), ["High Major Faults", "High Dirty Pages"])

    def test_faults_and_dirty_pages_at_cutoff_stay_quiet(self):
        snap = replace(
            quiet_snapshot(),
            vm=VmCounters(pgmajfault=100),
            memory=replace(quiet_snapshot().memory, info=MemInfo(dirty=1024)),
        )
        self.assertEqual(evaluate(snap), [])
        self.assertEqual(_titles(evaluate(replace(snap, vm=VmCounters(pgmajfault=101)))), ["High Major Faults"])

    def test_overridden_fault_band_stays_strict(self):
        th = Thresholds().with_overrides({"major_faults": {"warning": 50}})
        self.assertTrue(th.major_faults.strict)
        self.assertEqual(evaluate(replace(quiet_snapshot(), vm=VmCounters(pgmajfault=50)), th), [])

    def test_sorted_critical_first_and_stable_within_tier(self):
        snap = replace(
            _with_memory(quiet_snapshot(), 100),
            vm=VmCounters(pswpin=5, pswpout=5, pgmajfault=500),
            cpu=replace(quiet_snapshot().cpu, usage_percent=99.0),
            network=NetCounters(tx_errors=1),
            pressure=PsiInfo(io_some_avg10=15.0),
        )
        findings = evaluate(snap)
        severities = [r.severity for r in findings]
        self.assertEqual(severities, sorted(severities))
        self.assertEqual(
            _titles(findings),
            [
                "Critically Low Memory",
                "CPU Saturated",
                "Elevated I/O Pressure",
                "Swap Activity",
                "High Major Faults",
                "Network Errors",
            ],
        )

    def test_evaluate_is_idempotent(self):
        snap = replace(_with_memory(quiet_snapshot(), 100), vm=VmCounters(pswpout=2))
        self.assertEqual(evaluate(snap), evaluate(snap))

    def test_every_check_tolerates_empty_snapshot_fields(self):
        snap = replace(quiet_snapshot(), cpu_times=None, vm=None, network=None)
        for check in CHECKS:
            check(snap, Thresholds())


if __name__ == "__main__":
    unittest.main()
