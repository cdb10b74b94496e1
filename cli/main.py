"""Main CLI entry point for mail-receiver."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from mail_receiver.config.config_loader import ConfigLoader
from mail_receiver.config.logging_config import configure_logging, current_message_id
from mail_receiver.models.incoming_email import IncomingEmailRecord
from mail_receiver.services.body.body_extractor import BodyExtractor
from mail_receiver.services.email_parser.address_parser import parse_from_field
from mail_receiver.services.email_parser.message_parser import MessageParser
from mail_receiver.services.receiver.errors import ProcessingError
from mail_receiver.storage.audit_log import AuditLog
from mail_receiver.storage.database import DatabaseConnection, IncomingEmailRepository
from mail_receiver.utils.unicode_utils import truncate_subject

logger = logging.getLogger(__name__)


def extract_bodies(email_paths: list[Path], config_path: Optional[Path] = None) -> tuple[int, int]:
    """
    Parse messages and print their new and elided content.

    Args:
        email_paths: Raw message files
        config_path: Optional custom config file path

    Returns:
        Tuple of (messages extracted, messages that failed)
    """
    config = ConfigLoader(config_path).load_receiver_config()
    parser = MessageParser()
    extractor = BodyExtractor(config)

    extracted = 0
    failed = 0

    for email_path in email_paths:
        try:
            message = parser.parse_file(email_path)
        except (FileNotFoundError, ProcessingError) as e:
            print(f"\n## {email_path.name}")
            print(f"Error: {e}\n")
            failed += 1
            continue

        token = current_message_id.set(message.message_id)
        try:
            from_email, from_name = parse_from_field(message.from_header)
            body = extractor.extract(message, has_attachments=bool(message.attachments))
        except ProcessingError as e:
            logger.warning(f"Could not extract {email_path}: {e.kind}")
            print(f"\n## {truncate_subject(message.subject or email_path.name)}")
            print(f"Error: {e.kind}\n")
            failed += 1
            continue
        finally:
            current_message_id.reset(token)

        print(f"\n## {truncate_subject(message.subject or email_path.name)}")
        print(f"Message-ID: {message.message_id}")
        print(f"From: {from_name or ''} <{from_email or ''}>")
        print(f"Format: {body.format.name.lower()}")
        print(f"Attachments: {len(message.attachments)}\n")
        print(body.content)
        if body.elided:
            print("\n--- elided ---\n")
            print(body.elided)
        extracted += 1

    print("---")
    print(f"\nExtracted {extracted} messages, {failed} failed")
    return extracted, failed


def cmd_init_db(args):
    """Initialize database command."""
    config = ConfigLoader(args.config).load_app_config()

    db = DatabaseConnection(config.storage.get_database_path())
    db.execute_schema()
    db.migrate()
    db.close()

    print(f"Database initialized at: {config.storage.get_database_path()}")


def cmd_export(args):
    """Export audit log command."""
    config = ConfigLoader(args.config).load_app_config()

    audit_log = AuditLog(config.storage.get_audit_log_path())
    output_path = Path(args.output) if args.output else Path("audit_export.json")

    count = audit_log.export(output_path)

    print(f"Exported {count} events to: {output_path}")


def format_record(record: IncomingEmailRecord) -> str:
    lines = [
        f"Message-ID: {record.message_id}",
        f"Subject: {record.subject}",
        f"From: {record.from_address or '-'}",
        f"To: {record.to_addresses or '-'}",
        f"Cc: {record.cc_addresses or '-'}",
        f"User: {record.user_id if record.user_id is not None else '-'}",
        f"Topic: {record.topic_id if record.topic_id is not None else '-'}",
        f"Post: {record.post_id if record.post_id is not None else '-'}",
        f"Bounce: {'yes' if record.is_bounce else 'no'}",
        f"Auto-generated: {'yes' if record.is_auto_generated else 'no'}",
        f"Outcome: {record.outcome or '-'}",
        f"Error: {record.error or '-'}",
        f"Created: {record.created_at.isoformat()}",
    ]
    return "\n".join(lines)


def cmd_audit(args) -> int:
    """Show the audit record of one message."""
    config = ConfigLoader(args.config).load_app_config()

    db = DatabaseConnection(config.storage.get_database_path())
    db.execute_schema()
    try:
        record = IncomingEmailRepository(db).find_by_message_id(args.message_id.strip().strip("<>"))
    finally:
        db.close()

    if record is None:
        print(f"No record for Message-ID: {args.message_id}")
        return 1

    print(format_record(record))
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="mail-receiver - Incoming email processing")
    parser.add_argument("--config", type=Path, help="Custom config file path")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Init-db command
    subparsers.add_parser("init-db", help="Initialize database")

    # Extract command
    extract_parser = subparsers.add_parser("extract", help="Show the content extracted from messages")
    extract_parser.add_argument("emails", nargs="+", help="Raw message file(s)")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export the audit log")
    export_parser.add_argument("--output", type=Path, help="Output file path")

    # Audit command
    audit_parser = subparsers.add_parser("audit", help="Show the audit record of a message")
    audit_parser.add_argument("message_id", help="Message-ID of the message")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_config = ConfigLoader(args.config).load_app_config()
    level = "DEBUG" if args.verbose else app_config.logging.level
    configure_logging(level, app_config.logging.json_format)

    if args.command == "init-db":
        cmd_init_db(args)
    elif args.command == "extract":
        _, failed = extract_bodies([Path(p) for p in args.emails], args.config)
        sys.exit(1 if failed else 0)
    elif args.command == "export":
        cmd_export(args)
    elif args.command == "audit":
        sys.exit(cmd_audit(args))


if __name__ == "__main__":
    main()
