"""Plain-text audit trail of outbound Discord messages"""
from pathlib import Path
from typing import Optional

from .logger import setup_logger
from .timezone import now_utc

logger = setup_logger(__name__)

SEPARATOR = "=" * 50


class AuditLog:
    """Appends every outbound message to a text file"""

    def __init__(self, path: str = "discord_audit.log"):
        self.path = Path(path)

    def append(self, channel_id: Optional[int], message: str, note: Optional[str] = None):
        """
        Record an outbound message

        Args:
            channel_id: Target channel (None when unconfigured)
            message: Message text as composed
            note: Optional marker such as 'REMINDER' or 'FALLBACK'
        """
        header = f"[{now_utc().isoformat()}Z] TO: {channel_id}"
        if note:
            header += f" ({note})"

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(f"{header}\n{message}\n{SEPARATOR}\n")
        except OSError as e:
            logger.error(f"Could not write audit entry to {self.path}: {e}")
