"""
plyra-rollback CLI
~~~~~~~~~~~~~~~~~~

Command-line interface for plyra-rollback.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from plyra_rollback.core.enums import Environment, PointKind


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="plyra-rollback",
        description="plyra-rollback — Rollback orchestration for risky changes",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    subparsers = parser.add_subparsers(dest="command")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP sidecar server")
    serve_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to rollback_config.yaml (default: $PLYRA_ROLLBACK_CONFIG)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Bind address (default: sidecar.host)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port number (default: sidecar.port)",
    )

    # version command
    subparsers.add_parser("version", help="Show version")

    # plan command
    plan_parser = subparsers.add_parser(
        "plan", help="Print the rollback plan a point would get (dry run)"
    )
    plan_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to rollback_config.yaml",
    )
    plan_parser.add_argument(
        "--kind",
        type=str,
        required=True,
        choices=[k.value for k in PointKind],
        help="Rollback point kind",
    )
    plan_parser.add_argument(
        "--environment",
        type=str,
        required=True,
        choices=[e.value for e in Environment],
        help="Target environment",
    )
    plan_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the plan as JSON",
    )

    # inspect command
    inspect_parser = subparsers.add_parser(
        "inspect", help="Show the resolved configuration"
    )
    inspect_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to rollback_config.yaml",
    )

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from plyra_rollback import __version__

        print(f"plyra-rollback {__version__} (Plyra Agentic Infrastructure)")
        return

    if args.command == "serve":
        _run_serve(args)
    elif args.command == "plan":
        _run_plan(args)
    elif args.command == "inspect":
        _run_inspect(args)
    else:
        parser.print_help()
        sys.exit(1)


def _load(config_path: str | None) -> Any:
    """Load the configuration from a path, $PLYRA_ROLLBACK_CONFIG or defaults."""
    from plyra_rollback.config.defaults import DEFAULT_CONFIG
    from plyra_rollback.config.loader import (
        load_config,
        load_config_from_dict,
        resolve_config_path,
    )
    from plyra_rollback.exceptions import ConfigError

    path = resolve_config_path(config_path)
    try:
        if path:
            return load_config(path)
        return load_config_from_dict(DEFAULT_CONFIG)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)


def _run_serve(args: argparse.Namespace) -> None:
    """Start the HTTP sidecar server."""
    from plyra_rollback.core.service import RollbackService

    config = _load(args.config)
    service = RollbackService(config)
    host = args.host or config.sidecar.host
    port = args.port or config.sidecar.port
    print(f"Starting plyra-rollback sidecar on {host}:{port}")
    service.serve(host=host, port=port)


def _run_plan(args: argparse.Namespace) -> None:
    """Build a plan for a hypothetical point without capturing anything."""
    from plyra_rollback.core.models import RollbackPoint
    from plyra_rollback.planning.approval import ApprovalPolicy
    from plyra_rollback.planning.plan_builder import PlanBuilder
    from plyra_rollback.planning.risk_assessor import RiskAssessor

    config = _load(args.config)
    kind = PointKind(args.kind)
    environment = Environment(args.environment)
    assessor = RiskAssessor.from_config(config.risk_rules)
    point = RollbackPoint(
        id="dry-run",
        kind=kind,
        description="dry run",
        version="",
        environment=environment,
        created_by="cli",
        risks=tuple(assessor.assess(kind, environment)),
    )
    policy = ApprovalPolicy(config.approval)
    plan = PlanBuilder(policy, config.validation).build(point)

    if args.json:
        print(json.dumps(plan.to_dict(), indent=2, default=str))
        return

    print(f"Rollback plan for a {kind.value} point in {environment.value}")
    print(f"  Estimated duration: {plan.estimated_duration_minutes:.1f} min")
    reasons = policy.reasons(point)
    if reasons:
        print(f"  Approval required:  yes ({'; '.join(reasons)})")
    else:
        print("  Approval required:  no")
    print()
    if plan.risks:
        print("Risks:")
        for risk in plan.risks:
            print(
                f"  - [{risk.severity.value}] {risk.kind.value} "
                f"({risk.probability}%): {risk.description}"
            )
        print()
    print("Pre-validation:")
    for check in plan.pre_validation:
        print(f"  - {check.id}: {check.check}")
    print("Steps:")
    for step in plan.steps:
        flags = ["critical" if step.critical else "non-critical"]
        if not step.automated:
            flags.append("manual")
        deps = f" after {', '.join(step.depends_on)}" if step.depends_on else ""
        print(
            f"  {step.order}. {step.id} ({step.kind.value} {step.action}, "
            f"{step.timeout_seconds:g}s, {step.max_retries} retries, "
            f"{', '.join(flags)}){deps}"
        )
    print("Post-validation:")
    for check in plan.post_validation:
        marker = "" if check.critical else " (non-critical)"
        print(f"  - {check.id}: {check.check}{marker}")


def _run_inspect(args: argparse.Namespace) -> None:
    """Run the inspect command."""
    import yaml

    config = _load(args.config)
    print(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False))


if __name__ == "__main__":
    main()
