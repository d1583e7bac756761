"""Registry of exported attachment files, keyed by file name."""

import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from config_loader import MigrationConfig
from models import Attachment


class AttachmentRegistry:
    """
    Indexes every file in the export's attachments directories.

    Kibela names attachments by numeric id, so the file name is the join key
    against image references found in note bodies. Duplicate names across
    export roots are not an error: the last one scanned wins.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('kibela_esa_migrator.fetchers.attachment_registry')
        self._attachments: Dict[str, Attachment] = {}
        self.stats = {
            'files_indexed': 0,
            'duplicates': 0
        }

    @classmethod
    def from_export(
        cls,
        config: MigrationConfig,
        export_dir: Optional[Union[str, Path]] = None,
        logger: Optional[logging.Logger] = None
    ) -> 'AttachmentRegistry':
        """
        Build a registry by scanning kibela-<team>-*/attachments/*.

        Args:
            config: Migration settings
            export_dir: Export directory override
            logger: Logger instance

        Returns:
            Populated AttachmentRegistry
        """
        registry = cls(logger=logger)
        root = Path(export_dir or config.kibela_dir)

        for export_root in sorted(root.glob(f"kibela-{config.kibela_team}-*")):
            attachments_dir = export_root / 'attachments'
            if not attachments_dir.is_dir():
                continue
            for file_path in sorted(attachments_dir.iterdir()):
                if file_path.is_file():
                    registry.add(Attachment(name=file_path.name, source_path=str(file_path)))

        registry.logger.info(
            f"Indexed {len(registry)} attachments "
            f"({registry.stats['duplicates']} duplicate names)"
        )
        return registry

    def add(self, attachment: Attachment) -> None:
        """Index an attachment, replacing any earlier one with the same name."""
        previous = self._attachments.get(attachment.name)
        if previous is not None:
            self.stats['duplicates'] += 1
            self.logger.warning(
                f"Duplicate attachment name '{attachment.name}': "
                f"{attachment.source_path} replaces {previous.source_path}"
            )
            # The survivor takes the later scan position
            del self._attachments[attachment.name]
        self._attachments[attachment.name] = attachment
        self.stats['files_indexed'] += 1

    def get(self, name: str) -> Optional[Attachment]:
        return self._attachments.get(name)

    def destination_for(self, name: str) -> Optional[str]:
        """Return the uploaded esa URL for a file name, if any."""
        attachment = self._attachments.get(name)
        return attachment.destination_path if attachment else None

    def __iter__(self) -> Iterator[Attachment]:
        return iter(list(self._attachments.values()))

    def __len__(self) -> int:
        return len(self._attachments)


__all__ = ['AttachmentRegistry']
