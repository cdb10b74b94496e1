"""Attachment filtering, upload and inlining into post content."""

import logging
import re
from typing import Iterable, Optional

from mail_receiver.config.receiver_config import ReceiverConfig
from mail_receiver.models.directory import Identity, Upload
from mail_receiver.models.incoming_message import Attachment
from mail_receiver.services.collaborators.base import UploadStore
from mail_receiver.utils.unicode_utils import human_size

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = re.compile(r"\[image:.*?\d+[^\]]*\]", re.IGNORECASE)


def attachment_markdown(upload: Upload, is_image: bool) -> str:
    """
    Reference markup for a stored upload.

    Examples:
        >>> attachment_markdown(Upload("/u/a.pdf", "a.pdf", 2048), is_image=False)
        "<a class='attachment' href='/u/a.pdf'>a.pdf</a> (2 KB)"
    """
    if is_image:
        return f"<img src='{upload.url}' width='{upload.width}' height='{upload.height}'>"
    return f"<a class='attachment' href='{upload.url}'>{upload.original_filename}</a> ({human_size(upload.filesize)})"


class AttachmentInliner:
    """Upload allowed attachments and reference them from the post content."""

    def __init__(self, config: ReceiverConfig, uploads: UploadStore):
        self.config = config
        self.uploads = uploads
        self._content_type_deny = self._compile(config.attachment_content_type_blacklist)
        self._filename_deny = self._compile(config.attachment_filename_blacklist)

    @staticmethod
    def _compile(pattern: str) -> Optional[re.Pattern]:
        return re.compile(pattern, re.IGNORECASE) if pattern else None

    def is_allowed(self, attachment: Attachment) -> bool:
        if self._content_type_deny and self._content_type_deny.search(attachment.content_type or ""):
            return False
        if self._filename_deny and self._filename_deny.search(attachment.filename or ""):
            return False
        return True

    def filter(self, attachments: Iterable[Attachment]) -> list[Attachment]:
        """Attachments passing both deny patterns, in message order."""
        return [attachment for attachment in attachments if self.is_allowed(attachment)]

    def inline(
        self,
        raw: str,
        attachments: Iterable[Attachment],
        owner: Identity,
        for_group_message: bool = False,
    ) -> str:
        """
        Upload attachments and add their references to ``raw``.

        An image referenced by its ``cid:`` URL replaces that URL; otherwise
        it replaces the first ``[image: ...]`` placeholder. Anything else is
        appended. Attachments the upload store rejects are left out.

        Args:
            raw: Post content
            attachments: Allowed attachments
            owner: Identity the uploads belong to
            for_group_message: Uploads are for a group private message

        Returns:
            Post content with attachment references
        """
        for attachment in attachments:
            upload = self.uploads.store(attachment.content, attachment.filename, owner.id, for_group_message)
            if upload is None:
                logger.warning(f"Could not store attachment {attachment.filename}")
                continue

            if attachment.is_image:
                if attachment.url and attachment.url in raw:
                    raw = raw.replace(attachment.url, upload.url, 1)
                elif IMAGE_PLACEHOLDER.search(raw):
                    raw = IMAGE_PLACEHOLDER.sub(lambda _: attachment_markdown(upload, True), raw, count=1)
                else:
                    raw = f"{raw}\n\n{attachment_markdown(upload, True)}\n\n"
            else:
                raw = f"{raw}\n\n{attachment_markdown(upload, False)}\n\n"

        return raw
