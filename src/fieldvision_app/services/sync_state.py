import json
import logging
from datetime import datetime
from pathlib import Path


class SyncStateStore:
    """Persists the last successful drain time in a small JSON file."""

    def __init__(self, state_file):
        self.state_file = Path(state_file)
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(self.__class__.__name__)

    def load_last_sync_date(self):
        if not self.state_file.exists():
            return None
        try:
            with open(self.state_file, 'r') as f:
                data = json.load(f)
            value = data.get('last_sync_date')
            return datetime.fromisoformat(value) if value else None
        except (OSError, ValueError, AttributeError) as e:
            self.logger.warning(f"Ignoring unreadable sync state file {self.state_file}: {e}")
            return None

    def save_last_sync_date(self, value):
        with open(self.state_file, 'w') as f:
            json.dump({'last_sync_date': value.isoformat() if value else None}, f)
