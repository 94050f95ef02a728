from studio_api.schemas.photo import (
	BulkUploadResponse,
	FailedUpload,
	UploadResults,
	UploadSummary,
)
from studio_api.services.ingestion_service import BatchResult, FileFailure


def failure_message(failure: FileFailure, privileged: bool) -> str:
	"""Administrators also get the diagnostic code behind a failure"""
	if privileged and failure.detail:
		return f"{failure.message} ({failure.detail})"
	return failure.message


def upload_message(batch: BatchResult) -> str:
	return (
		f"Upload complete! {len(batch.successful)} successful, "
		f"{len(batch.failed)} failed out of {batch.total} total files."
	)


def report_batch(batch: BatchResult, privileged: bool, with_message: bool = False) -> BulkUploadResponse:
	"""Turn a batch result into the API response body"""
	failed = [
		FailedUpload(
			filename=f.filename,
			original_filename=f.original_filename,
			error=failure_message(f, privileged),
		)
		for f in batch.failed
	]
	return BulkUploadResponse(
		success=True,
		message=upload_message(batch) if with_message else None,
		results=UploadResults(successful=batch.successful, failed=failed),
		summary=UploadSummary(
			total=batch.total,
			successful=len(batch.successful),
			failed=len(batch.failed),
		),
	)
