from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol

from receiptflow.ai.analysis import VideoCandidate
from receiptflow.ai.config import get_setting
from receiptflow.base.exceptions import ExtractionError
from receiptflow.base.image import MediaNormalizer
from receiptflow.base.media import MediaFile, split_accepted
from receiptflow.base.progress import progress_iter
from receiptflow.base.records import (
    DEFAULT_CURRENCY,
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_TAX_RATE_TYPE,
    ReceiptFields,
    ReceiptRecord,
    RecordCollection,
)
from receiptflow.base.video import FrameExtractor

logger = logging.getLogger(__name__)


class AnalysisService(Protocol):
    async def analyze_image(self, image: bytes, mime_type: str = "image/jpeg") -> dict[str, Any]: ...

    async def analyze_video(self, video: MediaFile) -> list[VideoCandidate]: ...


class CandidateFailurePolicy(str, Enum):
    """What to do when the archival frame of a video candidate cannot be captured.

    Both policies drop the candidate; ``NOTIFY`` also posts one notice per video.
    """

    DROP = "drop"
    NOTIFY = "notify"


class NoticeBoard:
    """Holds the transient, dismissible global notice."""

    def __init__(self) -> None:
        self.current: str | None = None
        self.history: list[str] = []

    def post(self, message: str) -> None:
        logger.warning(message)
        self.current = message
        self.history.append(message)

    def dismiss(self) -> None:
        self.current = None


class AnalysisOrchestrator:
    """Runs submitted files through normalization, analysis and frame capture.

    Files are processed one at a time. Each file gets a ``processing`` record before any
    network call; the record then moves to ``success`` or ``error``. A failure is confined
    to its own file and reported once on the notice board.
    """

    def __init__(
        self,
        analyzer: AnalysisService,
        records: RecordCollection | None = None,
        notices: NoticeBoard | None = None,
        normalizer: MediaNormalizer | None = None,
        extractor: FrameExtractor | None = None,
        candidate_failure_policy: CandidateFailurePolicy | str | None = None,
    ):
        self.analyzer = analyzer
        self.records = records if records is not None else RecordCollection()
        self.notices = notices if notices is not None else NoticeBoard()
        self.normalizer = normalizer or MediaNormalizer()
        self.extractor = extractor or FrameExtractor(timeout=float(get_setting("video", "extract_timeout")))
        self.candidate_failure_policy = CandidateFailurePolicy(
            candidate_failure_policy or get_setting("pipeline", "candidate_failure_policy")
        )
        self.status_message = ""
        self._running = False
        self._cancelled = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the current batch before its next file or video candidate starts."""
        if self._running:
            logger.info("Cancellation requested")
        self._cancelled = True

    async def submit(self, files: list[MediaFile]) -> list[ReceiptRecord]:
        """Validate a user submission and process the accepted files.

        Unsupported files are dropped with one notice; the rest of the batch still runs.
        """
        self.notices.dismiss()
        accepted, rejection = split_accepted(files)
        if rejection is not None:
            self.notices.post(str(rejection))
        return await self.process_batch(accepted)

    async def process_batch(self, files: list[MediaFile]) -> list[ReceiptRecord]:
        """Process files strictly in sequence.

        Returns:
            The records this batch produced, in creation order
        """
        self._running = True
        self._cancelled = False
        produced: list[ReceiptRecord] = []
        try:
            for file in progress_iter(files, desc="Analyzing receipts", total=len(files)):
                if self._cancelled:
                    logger.info("Batch cancelled, %s and later files were not started", file.name)
                    break
                produced.extend(await self._process_file(file))
        finally:
            self._running = False
            self.status_message = ""
        return produced

    async def _process_file(self, file: MediaFile) -> list[ReceiptRecord]:
        record = ReceiptRecord(source_name=file.name)
        self.records.add_front(record)

        try:
            if file.is_video:
                self.status_message = f"Scanning video: {file.name}"
                return await self._process_video(file, record)
            self.status_message = f"Analyzing receipt: {file.name}"
            await self._process_image(file, record)
            return [record]
        except Exception as e:
            logger.error("Failed %s: %s", file.name, e)
            record.fail(str(e))
            self.notices.post(f"{file.name}: {e}")
            return [record]

    async def _process_image(self, file: MediaFile, record: ReceiptRecord) -> None:
        normalized = self.normalizer.normalize(file.data)
        data = await self.analyzer.analyze_image(normalized, "image/jpeg")
        fields = ReceiptFields.from_dict(
            {
                **data,
                "taxRateType": DEFAULT_TAX_RATE_TYPE,
                "paymentMethod": data.get("paymentMethod") or DEFAULT_PAYMENT_METHOD,
            }
        )
        record.succeed(fields, normalized)
        logger.info("Analyzed %s: %s, %s", file.name, fields.shop_name, fields.amount)

    async def _process_video(self, file: MediaFile, placeholder: ReceiptRecord) -> list[ReceiptRecord]:
        candidates = await self.analyzer.analyze_video(file)

        found: list[ReceiptRecord] = []
        failed = 0
        for index, candidate in enumerate(candidates, start=1):
            if self._cancelled:
                break
            self.status_message = f"Extracting receipt ({index}/{len(candidates)})..."
            try:
                frame = await self.extractor.extract(file, candidate.timestamp)
            except ExtractionError as e:
                failed += 1
                logger.warning("Dropping receipt at %.1fs of %s: %s", candidate.timestamp, file.name, e)
                continue
            found.append(
                ReceiptRecord.from_video_candidate(file.name, self._video_fields(candidate), candidate.timestamp, frame)
            )

        if failed and self.candidate_failure_policy is CandidateFailurePolicy.NOTIFY:
            self.notices.post(f"{file.name}: {failed} of {len(candidates)} receipt(s) could not be captured")

        if placeholder.id in self.records:
            self.records.replace(placeholder.id, found)
        else:
            for record in reversed(found):
                self.records.add_front(record)
        return found

    @staticmethod
    def _video_fields(candidate: VideoCandidate) -> ReceiptFields:
        data = candidate.data
        return ReceiptFields.from_dict(
            {
                **data,
                "taxRateType": DEFAULT_TAX_RATE_TYPE,
                "currency": DEFAULT_CURRENCY,
                "items": [],
                "paymentMethod": data.get("paymentMethod") or DEFAULT_PAYMENT_METHOD,
                "peopleCount": data.get("peopleCount") or 1,
                "taxAmount": 0,
                "remarks": data.get("remarks") or "",
            }
        )
