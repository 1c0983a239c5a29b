"""Test doubles and builders shared across test modules."""

from datetime import date, time
from decimal import Decimal

from cashbook.models.entry import Attachment, AttachmentKind, EntryDraft, EntryType
from cashbook.services.attachments import AttachmentServiceInterface, AttachmentUploadError


class FakeAttachmentService(AttachmentServiceInterface):
    """Keeps uploaded objects in a dict."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_uploads = False
        self._counter = 0

    async def upload_many(self, files, user_id):
        if self.fail_uploads:
            raise AttachmentUploadError("upload refused")
        attachments = []
        for filename, data in files:
            self._counter += 1
            key = f"test/{user_id}/{self._counter}_{filename}"
            self.objects[key] = data
            attachments.append(Attachment(url=key, kind=AttachmentKind.UPLOADED))
        return attachments

    async def delete(self, keys):
        for key in keys:
            self.objects.pop(key, None)
            self.deleted.append(key)
        return len(keys)

    def public_url(self, key):
        return f"https://cdn.example.com/{key}"


def make_draft(
    amount="100",
    entry_type=EntryType.CASH_IN,
    entry_date=date(2024, 1, 5),
    entry_time=time(14, 30),
    remark="",
    attachments=(),
):
    return EntryDraft(
        amount=Decimal(amount),
        type=entry_type,
        remark=remark,
        entry_date=entry_date,
        entry_time=entry_time,
        attachments=list(attachments),
    )
