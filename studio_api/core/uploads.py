import time
from typing import Optional, Protocol

from fastapi import UploadFile


class UploadedFile(Protocol):
	"""File-like capability consumed by the ingestion pipeline"""

	name: str
	size: Optional[int]
	content_type: Optional[str]
	last_modified: int

	async def read_bytes(self) -> bytes:
		...


class MultipartUpload:
	"""Adapts a multipart ``UploadFile`` to ``UploadedFile``"""

	def __init__(self, upload: UploadFile):
		self._upload = upload
		self.name = upload.filename or ""
		self.content_type = upload.content_type
		self.size = upload.size if upload.size is not None else self._measure()
		# Multipart bodies carry no modification time; use the receive time
		self.last_modified = int(time.time() * 1000)

	def _measure(self) -> Optional[int]:
		try:
			self._upload.file.seek(0, 2)
			size = self._upload.file.tell()
			self._upload.file.seek(0)
			return size
		except (OSError, ValueError):
			return None

	async def read_bytes(self) -> bytes:
		await self._upload.seek(0)
		return await self._upload.read()
