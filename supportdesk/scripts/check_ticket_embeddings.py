# supportdesk/scripts/check_ticket_embeddings.py
"""
Report open tickets without a question embedding

Such tickets can never be matched by dedup, so every new asker of the same
question opens another ticket. This only reports; it does not repair.

Usage:
    python -m supportdesk.scripts.check_ticket_embeddings
"""
import asyncio
import sys

from supportdesk.core.config import get_settings
from supportdesk.core.container import ServiceContainer
from supportdesk.core.logger import configure_logging, get_logger

logger = get_logger(__name__)


async def check_ticket_embeddings() -> int:
    """Print unmatchable tickets; exit code 1 when any exist"""
    container = ServiceContainer.from_settings(get_settings())
    try:
        unmatchable = await container.dedup.find_unmatchable_tickets()

        if not unmatchable:
            print("✓ Every open ticket has a question embedding")
            return 0

        print(f"\n✗ Found {len(unmatchable)} open tickets without question embeddings:\n")
        for ticket in unmatchable[:20]:
            print(f"  Ticket: {ticket['ticket_id']}")
            print(f"  Subscribers: {ticket['subscribers']}")
            print(f"  Question: {ticket['question'][:120]}")
            print()
        if len(unmatchable) > 20:
            print(f"  ... and {len(unmatchable) - 20} more\n")

        print("\n=== SUMMARY ===")
        print(f"Unmatchable tickets: {len(unmatchable)}")
        print(f"Waiting users: {sum(t['subscribers'] for t in unmatchable)}")
        return 1
    except Exception as e:
        logger.error(f"Error checking ticket embeddings: {e}")
        return 2
    finally:
        await container.close()


if __name__ == "__main__":
    configure_logging(get_settings().log_level, json_output=False)
    sys.exit(asyncio.run(check_ticket_embeddings()))
