#!/usr/bin/env python3
"""
Command-line interface for the NAP provisioner
==============================================
Creates, validates and inspects NAPs on ProSBC instances.

Instances come from a JSON registry (``--registry`` / ``PROSBC_REGISTRY_FILE``)
or, when none is configured, from ``PROSBC_BASE_URL`` / ``PROSBC_USERNAME`` /
``PROSBC_PASSWORD``.  A ``.env`` file next to the package or in the current
directory is loaded first.

Exit codes: 0 success, 1 operation failed, 2 invalid input.

Run with: python -m provisioner <command> [options]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

from .errors import ProvisionerError
from .instance_cache import EnvInstanceRegistry, InstanceRegistry, JsonInstanceRegistry
from .models import NapDraft
from .run_config import ProvisionerRunConfig
from .service import NapProvisioner
from .validation import validate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_env() -> None:
    """Load ``.env`` from the project root, else from the CWD."""
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


def _parse_fields(pairs: List[str]) -> Dict[str, str]:
    fields = {}
    for pair in pairs or []:
        key, sep, value = pair.partition('=')
        if not sep or not key.strip():
            raise ValueError(f"--field expects KEY=VALUE, got {pair!r}")
        fields[key.strip()] = value
    return fields


def draft_from_args(args) -> NapDraft:
    """Build a ``NapDraft`` from the ``create`` / ``validate`` options."""
    data = _parse_fields(getattr(args, 'field', None))
    data['name'] = args.name
    if args.profile_id is not None:
        data['profile_id'] = args.profile_id
    if args.disabled:
        data['enabled'] = False
    if args.proxy_ip is not None:
        data['sip_destination_ip'] = args.proxy_ip
    if args.proxy_port is not None:
        data['sip_destination_port'] = args.proxy_port
    data['sip_servers'] = args.sip_server or []
    data['port_ranges'] = args.port_range or []
    return NapDraft.from_dict(data)


def _registry(cfg: ProvisionerRunConfig) -> InstanceRegistry:
    if cfg.registry_file:
        return JsonInstanceRegistry(cfg.registry_file)
    return EnvInstanceRegistry()


def _emit(payload, as_json: bool, lines: List[str]) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
    else:
        for line in lines:
            print(line)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_create(args, provisioner: NapProvisioner) -> int:
    draft = draft_from_args(args)
    result = provisioner.create_nap(args.instance, draft)
    lines = [f"{'OK' if result.success else 'FAILED'}: {result.message}"]
    if result.edit_path:
        lines.append(f"  Edit page: {result.edit_path}")
    if result.warning:
        lines.append(f"  Warning:   {result.warning}")
    for failure in result.child_failures:
        lines.append(f"  Child failed: {failure.kind} {failure.ref} ({failure.error})")
    _emit(result.to_dict(), args.json, lines)
    return EXIT_OK if result.success else EXIT_FAILED


def cmd_validate(args, provisioner: NapProvisioner) -> int:
    report = validate(draft_from_args(args))
    lines = ["Configuration is valid" if report.is_valid else "Configuration is invalid"]
    lines += [f"  Error:   {e}" for e in report.errors]
    lines += [f"  Warning: {w}" for w in report.warnings]
    _emit(report.to_dict(), args.json, lines)
    return EXIT_OK if report.is_valid else EXIT_INVALID


def cmd_check(args, provisioner: NapProvisioner) -> int:
    exists = provisioner.check_nap_exists(args.instance, args.name)
    _emit({"name": args.name, "exists": exists}, args.json,
          [f'NAP "{args.name}" {"exists" if exists else "does not exist"}'])
    return EXIT_OK


def cmd_list(args, provisioner: NapProvisioner) -> int:
    naps = provisioner.list_naps(args.instance)
    _emit([n.to_dict() for n in naps], args.json,
          [f"{n.id:>6}  {n.name}" for n in naps] or ["No NAPs found"])
    return EXIT_OK


def cmd_resolve_id(args, provisioner: NapProvisioner) -> int:
    nap_id = provisioner.resolve_nap_id(args.instance, args.identifier)
    _emit({"identifier": args.identifier, "id": nap_id}, args.json, [nap_id])
    return EXIT_OK


def cmd_test_connection(args, provisioner: NapProvisioner) -> int:
    outcome = provisioner.test_connection(args.instance)
    _emit(outcome, args.json, [f"{'OK' if outcome['success'] else 'FAILED'}: {outcome['message']}"])
    return EXIT_OK if outcome["success"] else EXIT_FAILED


def cmd_instances(args, provisioner: NapProvisioner) -> int:
    instances = provisioner.registry.list_instances()
    _emit([i.to_dict() for i in instances], args.json,
          [f"{i.id:>6}  {i.name or '-':<24} {i.base_url}{'' if i.is_active else '  (inactive)'}"
           for i in instances] or ["No instances configured"])
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='nap-provisioner',
        description='Create and configure NAPs on ProSBC through its web forms',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m provisioner create --instance 3 --name carrier-a --proxy-ip 10.0.0.5
  python -m provisioner create --name carrier-b --sip-server 2 --port-range 1 --json
  python -m provisioner validate --name carrier-a --proxy-port 70000
  python -m provisioner resolve-id --instance 3 --identifier carrier-a
        """,
    )
    parser.add_argument('--registry', type=str, help='JSON instance registry file')
    parser.add_argument('--timeout', type=float, help='Per-call timeout in seconds (login/navigation/submit)')
    parser.add_argument('--verify-tls', action='store_true', help='Verify appliance TLS certificates')
    parser.add_argument('--id-retries', type=int, help='Extra passes of the id lookup (default: 1)')
    parser.add_argument('--no-abort-on-check-failure', action='store_true',
                        help='Create even when the duplicate check cannot be completed')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    def with_instance(p):
        p.add_argument('--instance', type=str, help='Instance id (default: first active / environment)')
        p.add_argument('--json', action='store_true', help='Print JSON output')
        return p

    def with_draft(p):
        p.add_argument('--name', required=True, help='NAP name')
        p.add_argument('--profile-id', type=str, help='Profile id (default: 1)')
        p.add_argument('--disabled', action='store_true', help='Create the NAP disabled')
        p.add_argument('--proxy-ip', type=str, help='SIP proxy address (IPv4 or domain)')
        p.add_argument('--proxy-port', type=int, help='SIP proxy port (default: 5060)')
        p.add_argument('--sip-server', action='append', metavar='ID', help='SIP transport server id (repeatable)')
        p.add_argument('--port-range', action='append', metavar='ID', help='Port range id (repeatable)')
        p.add_argument('--field', action='append', metavar='KEY=VALUE', help='Extra NAP field (repeatable)')
        return p

    with_draft(with_instance(sub.add_parser('create', help='Create a NAP'))).set_defaults(func=cmd_create)
    with_draft(with_instance(sub.add_parser('validate', help='Validate a NAP draft offline'))).set_defaults(func=cmd_validate)

    check = with_instance(sub.add_parser('check', help='Check whether a NAP name exists'))
    check.add_argument('--name', required=True)
    check.set_defaults(func=cmd_check)

    with_instance(sub.add_parser('list', help='List NAPs')).set_defaults(func=cmd_list)

    resolve = with_instance(sub.add_parser('resolve-id', help='Resolve a NAP name to its id'))
    resolve.add_argument('--identifier', required=True, help='NAP name or numeric id')
    resolve.set_defaults(func=cmd_resolve_id)

    with_instance(sub.add_parser('test-connection', help='Log in and report')).set_defaults(func=cmd_test_connection)
    with_instance(sub.add_parser('instances', help='List registry instances')).set_defaults(func=cmd_instances)
    return parser


def main(argv=None) -> int:
    _load_env()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    cfg = ProvisionerRunConfig.from_cli_args(args)
    if args.verbose:
        cfg.log_summary()
    provisioner = NapProvisioner(_registry(cfg), config=cfg)

    try:
        return args.func(args, provisioner)
    except ValueError as exc:
        logger.error(str(exc))
        return EXIT_INVALID
    except ProvisionerError as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
