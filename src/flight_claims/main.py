"""CLI entry point for claim filing administration.

This module provides the command-line interface with observability:
- Structured logging with claim context
- Per-operation metrics reporting
"""

import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

# Ensure src is on path when run as script
if __name__ == "__main__" and str(Path(__file__).resolve().parent.parent) not in sys.path:
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from flight_claims.exceptions import ClaimError


def _setup_logging() -> None:
    """Configure logging for CLI usage."""
    from flight_claims.observability import get_logger

    get_logger("flight_claims")
    logging.getLogger("flight_claims").setLevel(
        logging.DEBUG if "--debug" in sys.argv else logging.INFO
    )


def _usage() -> str:
    return """Usage:
  flight-claims create <claim.json>                          Create a draft claim from JSON file
  flight-claims status <claim_id>                            Get claim record
  flight-claims history <claim_id>                           Get claim audit log
  flight-claims validate <claim_id>                          Check whether a claim can be filed
  flight-claims file <claim_id> <reference> <filed_by> <method>
                                                             Mark a claim as filed with the airline
  flight-claims follow-up <claim_id> <YYYY-MM-DD> [type] [notes...]
                                                             Schedule the claim's follow-up
  flight-claims set-status <claim_id> <status> [notes...]    Administrative status change
  flight-claims auto-file <claim_id> [claim_id ...]          File the given claims automatically
  flight-claims auto-file --all                              File every claim ready to file
  flight-claims analyze <claim_id> [trigger]                 Show the refund decision for a claim
  flight-claims stats                                        Filing dashboard counters
  flight-claims metrics                                      Operation metrics for this session

Options:
  --debug                            Enable debug logging
  --json                             Use JSON log format
  --all                              Required by auto-file without claim ids
"""


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _services():
    from flight_claims.services import build_services

    return build_services()


def cmd_create(claim_path: Path) -> None:
    """Create a draft claim from a JSON file."""
    from flight_claims.db.repository import ClaimRepository
    from flight_claims.models.claim import ClaimInput

    if not claim_path.exists():
        _fail(f"File not found: {claim_path}")
    try:
        with open(claim_path, encoding="utf-8") as f:
            claim_data = json.load(f)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {claim_path}: {e}")
    try:
        claim_input = ClaimInput.model_validate(claim_data)
    except PydanticValidationError as e:
        print("Error: Invalid claim data:", file=sys.stderr)
        print(e.json(), file=sys.stderr)
        sys.exit(1)
    claim_id = ClaimRepository().create_claim(claim_input)
    _print_json({"claim_id": claim_id, "status": "draft"})


def cmd_status(claim_id: str) -> None:
    """Print the claim record."""
    from flight_claims.db.repository import ClaimRepository

    claim = ClaimRepository().get_claim(claim_id)
    if claim is None:
        _fail(f"Claim not found: {claim_id}")
    _print_json(claim.model_dump(mode="json"))


def cmd_history(claim_id: str) -> None:
    """Print claim audit log."""
    from flight_claims.db.repository import ClaimRepository

    repo = ClaimRepository()
    if repo.get_claim(claim_id) is None:
        _fail(f"Claim not found: {claim_id}")
    _print_json(repo.get_claim_history(claim_id))


def cmd_validate(claim_id: str) -> None:
    result = _services().validator.validate(claim_id)
    _print_json(result.model_dump(mode="json"))


def cmd_file(claim_id: str, reference: str, filed_by: str, method: str) -> None:
    services = _services()
    services.filing.mark_as_filed(claim_id, reference, filed_by, method)
    _print_json(services.store.get_claim(claim_id).model_dump(mode="json"))


def cmd_follow_up(claim_id: str, follow_up_date: str, args: list[str]) -> None:
    from flight_claims.models.claim import FollowUpType

    follow_up_type = args[0] if args else FollowUpType.REMINDER
    notes = " ".join(args[1:]) or None
    services = _services()
    services.filing.schedule_follow_up(claim_id, follow_up_date, follow_up_type, notes)
    claim = services.store.get_claim(claim_id)
    _print_json(
        {
            "claim_id": claim_id,
            "follow_up_date": claim.follow_up_date,
            "follow_up_type": claim.follow_up_type,
            "follow_up_notes": claim.follow_up_notes,
        }
    )


def cmd_set_status(claim_id: str, status: str, notes: list[str]) -> None:
    services = _services()
    services.filing.update_status(claim_id, status, " ".join(notes) or None)
    claim = services.store.get_claim(claim_id)
    _print_json({"claim_id": claim_id, "status": claim.status})


def cmd_auto_file(claim_ids: list[str], file_all: bool) -> None:
    """File claims automatically. Filing every ready claim needs --all."""
    if not claim_ids and not file_all:
        _fail("auto-file requires claim ids, or --all to file every ready claim")
    if claim_ids and file_all:
        _fail("auto-file takes either claim ids or --all, not both")
    outcomes = _services().batch_filing.process_automatic_filing(claim_ids or None)
    _print_json([o.model_dump(mode="json") for o in outcomes])


def cmd_analyze(claim_id: str, trigger: str | None) -> None:
    decision = _services().analyzer.analyze(claim_id, trigger)
    _print_json(decision.model_dump(mode="json"))


def cmd_stats() -> None:
    _print_json(_services().stats.get_filing_stats().model_dump(mode="json"))


def cmd_metrics() -> None:
    """Display per-operation metrics recorded in this process."""
    from flight_claims.observability import get_metrics

    summaries = get_metrics().get_all_summaries()
    if not summaries:
        print("No operations have been recorded in the current session.")
        return
    _print_json([s.to_dict() for s in summaries])


# command -> (minimum positional args after the command, usage hint)
_ARITY = {
    "create": (1, "<claim.json>"),
    "status": (1, "<claim_id>"),
    "history": (1, "<claim_id>"),
    "validate": (1, "<claim_id>"),
    "file": (4, "<claim_id> <reference> <filed_by> <method>"),
    "follow-up": (2, "<claim_id> <YYYY-MM-DD>"),
    "set-status": (2, "<claim_id> <status>"),
    "analyze": (1, "<claim_id>"),
}


def _dispatch(command: str, args: list[str], options: list[str]) -> None:
    if command in _ARITY:
        needed, hint = _ARITY[command]
        if len(args) < needed:
            print(f"Error: {command} requires {hint}", file=sys.stderr)
            print(_usage(), file=sys.stderr)
            sys.exit(1)

    if command == "create":
        cmd_create(Path(args[0]))
    elif command == "status":
        cmd_status(args[0])
    elif command == "history":
        cmd_history(args[0])
    elif command == "validate":
        cmd_validate(args[0])
    elif command == "file":
        cmd_file(args[0], args[1], args[2], args[3])
    elif command == "follow-up":
        cmd_follow_up(args[0], args[1], args[2:])
    elif command == "set-status":
        cmd_set_status(args[0], args[1], args[2:])
    elif command == "auto-file":
        cmd_auto_file(args, "--all" in options)
    elif command == "analyze":
        cmd_analyze(args[0], args[1] if len(args) > 1 else None)
    elif command == "stats":
        cmd_stats()
    elif command == "metrics":
        cmd_metrics()
    else:
        print(f"Error: Unknown command: {command}", file=sys.stderr)
        print(_usage(), file=sys.stderr)
        sys.exit(1)


def main() -> None:
    """Run a claim administration command."""
    import os

    # Handle global options
    argv = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    options = [arg for arg in sys.argv[1:] if arg.startswith("--")]

    if "--json" in options:
        os.environ["FLIGHT_CLAIMS_LOG_FORMAT"] = "json"
    if "--debug" in options:
        os.environ["FLIGHT_CLAIMS_LOG_LEVEL"] = "DEBUG"

    _setup_logging()

    if not argv:
        print(_usage(), file=sys.stderr)
        sys.exit(1)

    try:
        _dispatch(argv[0].lower(), argv[1:], options)
    except ClaimError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        print(json.dumps(e.to_dict()), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
