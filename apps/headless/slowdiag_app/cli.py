"""CLI entrypoints for the slowdiag monitor, one-shot snapshots and capability checks."""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
import time
from dataclasses import asdict

from slowdiag_core import (
    AppConfig,
    MetricAvailability,
    MetricsLog,
    Monitor,
    TickResult,
    build_doctor_payload,
    config_path,
    evaluate,
    load_config,
)
from slowdiag_core.logging_setup import configure_logging, get_logger, install_crash_hooks
from slowdiag_core.recommendations import iowait_percent
from slowdiag_telemetry import SnapshotAssembler, snapshot_row


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _fmt(value: float | int | None, fmt: str) -> str:
    return "n/a" if value is None else format(value, fmt)


def _build_assembler(cfg: AppConfig) -> SnapshotAssembler:
    return SnapshotAssembler.with_probes(
        smart_cadence=cfg.probes.smart_cadence,
        ipmi_cadence=cfg.probes.ipmi_cadence,
        smart_enabled=cfg.probes.smart_enabled,
        ipmi_enabled=cfg.probes.ipmi_enabled,
        proc_root=cfg.sources.proc_root,
        sys_root=cfg.sources.sys_root,
    )


def _apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    if getattr(args, "interval", None):
        cfg.monitor.interval_s = max(1, int(args.interval))
    if getattr(args, "csv_file", None):
        cfg.monitor.csv_file = args.csv_file
    if getattr(args, "no_probes", False):
        cfg.probes.smart_enabled = False
        cfg.probes.ipmi_enabled = False
    return cfg


def summary_line(result: TickResult) -> str:
    snap = result.snapshot
    mem = snap.memory
    iowait = iowait_percent(snap)
    return (
        f"[{snap.datetime}] CPU: {_fmt(snap.cpu.usage_percent, '5.1f')}% "
        f"| Mem: {_fmt(mem.used_mb, '6')}/{_fmt(mem.total_mb, '6')} MB "
        f"| Load: {_fmt(snap.cpu.load_avg_1, '5.2f')} {_fmt(snap.cpu.load_avg_5, '5.2f')} "
        f"{_fmt(snap.cpu.load_avg_15, '5.2f')} "
        f"| IOWait: {_fmt(iowait, '5.1f')}% "
        f"| IOPress: {_fmt(snap.pressure.io_some_avg10, '5.1f')}%"
    )


def _print_tick(result: TickResult) -> None:
    print(summary_line(result))
    for rec in result.findings:
        print(f"  {rec.severity.name:<8} {rec.title}: {rec.advice}")
    sys.stdout.flush()


def cmd_run(args: argparse.Namespace) -> int:
    cfg = _apply_overrides(load_config(), args)
    logger = get_logger()

    avail = MetricAvailability.probe(cfg.sources.proc_root, cfg.sources.sys_root)
    for warning in avail.warnings():
        logger.warning(warning, extra={"event": "capability_gap"})
        print(f"Note: {warning}")

    try:
        metrics_log = MetricsLog(cfg.monitor.csv_file).open()
    except OSError as exc:
        logger.error(f"cannot open metrics log {cfg.monitor.csv_file}: {exc}", extra={"event": "metrics_log_failed"})
        print(f"error: cannot open {cfg.monitor.csv_file}: {exc}", file=sys.stderr)
        return 1

    monitor = Monitor(
        _build_assembler(cfg),
        thresholds=cfg.build_thresholds(),
        metrics_log=metrics_log,
        interval_s=cfg.monitor.interval_s,
    )

    stop = threading.Event()

    def _request_stop(_signum, _frame) -> None:
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    print("slowdiag - system slowness diagnostic monitor")
    print(f"Logging to: {cfg.monitor.csv_file}")
    print(f"Interval: {cfg.monitor.interval_s} seconds")
    print("Press Ctrl+C to stop.\n")
    try:
        ticks = monitor.run(stop, max_ticks=args.ticks, on_tick=_print_tick)
    finally:
        metrics_log.close()
    print(f"\nStopped after {ticks} ticks. Data logged to {cfg.monitor.csv_file}")
    return 0


def cmd_once(args: argparse.Namespace) -> int:
    cfg = _apply_overrides(load_config(), args)
    assembler = _build_assembler(cfg)

    # Two ticks so counter deltas cover a real interval.
    _, state = assembler.tick()
    time.sleep(max(0.0, args.sample_seconds))
    snapshot, _ = assembler.tick(state)
    findings = evaluate(snapshot, cfg.build_thresholds())

    _print_json(
        {
            "metrics": dict(snapshot_row(snapshot)),
            "findings": [
                {"severity": rec.severity.name.lower(), "title": rec.title, "advice": rec.advice}
                for rec in findings
            ],
        }
    )
    return 0


def cmd_doctor(_args: argparse.Namespace) -> int:
    _print_json(build_doctor_payload(load_config()))
    return 0


def cmd_config_path(_args: argparse.Namespace) -> int:
    print(config_path())
    return 0


def cmd_config_show(_args: argparse.Namespace) -> int:
    cfg = load_config()
    payload = asdict(cfg)
    payload["effective_thresholds"] = asdict(cfg.build_thresholds())
    _print_json(payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slowdiag", description="Diagnose system slowdowns from kernel counters and sensors")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Run the headless monitor loop")
    run_cmd.add_argument("-i", "--interval", type=int, default=None, help="Seconds between measurements")
    run_cmd.add_argument("-c", "--csv-file", default=None, help="Append metrics to this CSV file")
    run_cmd.add_argument("--ticks", type=int, default=None, help="Stop after this many ticks")
    run_cmd.add_argument("--no-probes", action="store_true", help="Skip smartctl and ipmitool probes")
    run_cmd.set_defaults(func=cmd_run)

    once_cmd = sub.add_parser("once", help="Print one snapshot and its findings as JSON")
    once_cmd.add_argument("--sample-seconds", type=float, default=1.0, help="Gap between the two samples")
    once_cmd.add_argument("--no-probes", action="store_true", help="Skip smartctl and ipmitool probes")
    once_cmd.set_defaults(func=cmd_once)

    doctor_cmd = sub.add_parser("doctor", help="Report which metric sources are available")
    doctor_cmd.set_defaults(func=cmd_doctor)

    config_cmd = sub.add_parser("config", help="Inspect settings")
    config_sub = config_cmd.add_subparsers(dest="config_cmd", required=True)
    path_cmd = config_sub.add_parser("path", help="Print the settings file location")
    path_cmd.set_defaults(func=cmd_config_path)
    show_cmd = config_sub.add_parser("show", help="Print effective settings")
    show_cmd.set_defaults(func=cmd_config_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = load_config()
    configure_logging(keep_files=cfg.logging.keep_log_files, console=cfg.logging.console, level=cfg.logging.level)
    install_crash_hooks()
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
