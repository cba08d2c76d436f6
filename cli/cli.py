"""
Command line driver for the lead API client.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Callable, Dict, Optional

from leadcrm.client import (
    ApiClient,
    LeadListView,
    NotificationCenter,
    RealtimeClient,
    Session,
)
from leadcrm.core.config import settings
from leadcrm.core.exceptions import BaseAPIException, ValidationError
from leadcrm.models.lead import LeadStatus, ProjectType, Timing
from leadcrm.models.user import Role
from leadcrm.services.events import ADMIN_CHANNEL, provider_channel


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

# ANSI color codes
GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    """Print success message with [✓] symbol."""
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    """Print error message with [✗] symbol."""
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    """Print warning message with [!] symbol."""
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    """Print info message with [i] symbol."""
    print(f"{BLUE}[i]{RESET} {message}")


def _session(args: argparse.Namespace) -> Session:
    return Session(args.audience, token=args.token, provider_id=args.provider_id)


def _client(args: argparse.Namespace) -> ApiClient:
    return ApiClient(_session(args), base_url=args.api_url)


def _report(error: BaseAPIException) -> int:
    print_error(f"{error.message} ({error.code})")
    if isinstance(error, ValidationError):
        for field, message in error.field_errors.items():
            print_error(f"  {field}: {message}")
    redirect = getattr(error, "redirect_to", None)
    if redirect:
        print_info(f"  Continue at {redirect}")
    return 1


# Command functions
async def cmd_submit_lead(args: argparse.Namespace) -> int:
    """Command: Submit a lead through the public form endpoint."""
    async with _client(args) as api:
        try:
            lead = await api.submit_lead({
                "location_slug": args.location_slug,
                "name": args.name,
                "phone": args.phone,
                "email": args.email,
                "zip_code": args.zip_code,
                "project_type": args.project_type,
                "timing": args.timing,
                "notes": args.notes,
            })
        except BaseAPIException as e:
            return _report(e)

    print_success(f"Lead #{lead.id} captured at {lead.location.name if lead.location else args.location_slug}")
    if lead.service_provider:
        print_info(f"  Assigned to {lead.service_provider.name}")
    else:
        print_warning("  Left unassigned")
    return 0


async def cmd_leads(args: argparse.Namespace) -> int:
    """Command: List leads visible to the session."""
    async with _client(args) as api:
        view = LeadListView(api, status=args.status, location_id=args.location_id)
        try:
            await view.refetch()
        except BaseAPIException as e:
            return _report(e)

    if not view.leads:
        print_info("No leads")
        return 0

    for lead in view.leads:
        owner = lead.service_provider.name if lead.service_provider else "unassigned"
        print(f"  #{lead.id:<5} {lead.status.value:<10} {lead.name:<30} {owner}")
    print_info(f"{len(view.leads)} lead(s)")
    return 0


async def cmd_set_status(args: argparse.Namespace) -> int:
    """Command: Change a lead's status."""
    async with _client(args) as api:
        try:
            lead = await api.update_lead(args.lead_id, args.status)
        except BaseAPIException as e:
            return _report(e)

    print_success(f"Lead #{lead.id} is now {lead.status.value}")
    return 0


async def cmd_notifications(args: argparse.Namespace) -> int:
    """Command: Show notifications, optionally marking them all read."""
    async with _client(args) as api:
        center = NotificationCenter(api)
        try:
            await center.load(limit=args.limit)
            if args.mark_all_read:
                await center.mark_all_read()
        except BaseAPIException as e:
            return _report(e)

    for item in center.notifications:
        marker = " " if item.is_read else "*"
        print(f"  {marker} {item.created_at:%Y-%m-%d %H:%M} {item.data.message}")
    print_info(f"{center.unread_count} unread")
    return 0


async def cmd_watch(args: argparse.Namespace) -> int:
    """Command: Stream lead events until interrupted, polling as a backstop."""
    async with _client(args) as api:
        session = api.session
        channel = ADMIN_CHANNEL if session.audience is Role.ADMIN else provider_channel(session.provider_id)

        realtime = RealtimeClient(api)
        center = NotificationCenter(api, toast=print_info, poll_interval=args.poll_interval)
        center.bind(realtime, channel)

        if await realtime.connect():
            print_success(f"Listening on {channel}")
        else:
            print_warning("Realtime unavailable, polling the unread count only")

        center.start()
        try:
            while session.is_authenticated:
                await asyncio.sleep(1)
        finally:
            await center.close()
            await realtime.close()

    print_error("Session expired")
    return 1


# Command registry
COMMANDS: Dict[str, Callable] = {
    'submit-lead': cmd_submit_lead,
    'leads': cmd_leads,
    'set-status': cmd_set_status,
    'notifications': cmd_notifications,
    'watch': cmd_watch,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description='LeadCRM CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--api-url', default=settings.api_url, help='API base URL')
    parser.add_argument('--token', default=os.getenv('LEADCRM_TOKEN'), help='Bearer token (or LEADCRM_TOKEN)')
    parser.add_argument('--audience', choices=[role.value for role in Role], default=Role.ADMIN.value)
    parser.add_argument('--provider-id', type=int, default=None, help='Provider id for provider sessions')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # submit-lead
    submit_parser = subparsers.add_parser('submit-lead', help='Submit a lead')
    submit_parser.add_argument('--location-slug', required=True)
    submit_parser.add_argument('--name', required=True)
    submit_parser.add_argument('--phone', required=True)
    submit_parser.add_argument('--email', required=True)
    submit_parser.add_argument('--zip-code', required=True)
    submit_parser.add_argument('--project-type', choices=[item.value for item in ProjectType], required=True)
    submit_parser.add_argument('--timing', choices=[item.value for item in Timing], required=True)
    submit_parser.add_argument('--notes', default=None)

    # leads
    leads_parser = subparsers.add_parser('leads', help='List leads')
    leads_parser.add_argument('--status', choices=[item.value for item in LeadStatus], default=None)
    leads_parser.add_argument('--location-id', type=int, default=None)

    # set-status
    status_parser = subparsers.add_parser('set-status', help='Change lead status')
    status_parser.add_argument('lead_id', type=int)
    status_parser.add_argument('status', choices=[item.value for item in LeadStatus])

    # notifications
    notifications_parser = subparsers.add_parser('notifications', help='Show notifications')
    notifications_parser.add_argument('--limit', type=int, default=None)
    notifications_parser.add_argument('--mark-all-read', action='store_true')

    # watch
    watch_parser = subparsers.add_parser('watch', help='Stream lead events')
    watch_parser.add_argument(
        '--poll-interval',
        type=float,
        default=settings.notification_poll_interval_seconds,
        help='Seconds between unread count polls',
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    if parsed_args.audience == Role.PROVIDER.value and parsed_args.provider_id is None:
        print_error("--provider-id is required for provider sessions")
        return 1

    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
