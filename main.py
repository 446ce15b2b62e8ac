import argparse
import logging
import sys
from typing import List, Optional

from api import ResultServiceClient
from config import load_settings
from errors import ResultServiceError
from models import FILTER_FIELDS, FilterSelection
from result_pdf import ResultExport
from roster import RosterController, format_roster_table

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="[%(levelname)s] %(message)s")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="student-results", description="Student roster and result statements.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="print the full roster")

    f = sub.add_parser("filter", help="print the roster filtered by age/state/level/gender")
    for name in FILTER_FIELDS:
        f.add_argument(f"--{name}", default="")

    sub.add_parser("options", help="print the available filter values")

    e = sub.add_parser("export", help="write the result statement PDF for one student")
    e.add_argument("student_id")
    return p


def cmd_list(controller: RosterController) -> int:
    controller.load_roster()
    print(format_roster_table(controller.students, controller.error))
    return 1 if controller.error else 0


def cmd_filter(controller: RosterController, args) -> int:
    selection = FilterSelection(**{name: getattr(args, name) for name in FILTER_FIELDS})
    if selection.is_empty():
        print("[INFO] No filters given; showing the full roster.")
        return cmd_list(controller)
    controller.apply_filters(selection)
    print(format_roster_table(controller.students, controller.error))
    return 1 if controller.error else 0


def cmd_options(controller: RosterController) -> int:
    vocab = controller.load_filter_vocabulary()
    for label, values in (("Ages", vocab.ages), ("States", vocab.states),
                          ("Levels", vocab.levels), ("Genders", vocab.genders)):
        print(f"{label}: {', '.join(values) if values else '(unavailable)'}")
    return 0


def cmd_export(controller: RosterController, client: ResultServiceClient, settings, student_id: str) -> int:
    controller.select_for_export(student_id)
    job = ResultExport(client, settings, on_complete=controller.complete_export)
    try:
        path = job.run(student_id)
    except ResultServiceError as e:
        logger.debug("Export of student %s failed", student_id, exc_info=True)
        print(f"[ERROR] {job.error or 'Export failed'}: {e}")
        controller.dismiss_export()
        return 1
    print(f"[OK] {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 2
    configure_logging(settings.log_level)

    client = ResultServiceClient(settings)
    controller = RosterController(client)
    try:
        if args.command == "list":
            return cmd_list(controller)
        if args.command == "filter":
            return cmd_filter(controller, args)
        if args.command == "options":
            return cmd_options(controller)
        return cmd_export(controller, client, settings, args.student_id)
    finally:
        controller.cancel()
        client.close()


if __name__ == "__main__":
    sys.exit(main())
