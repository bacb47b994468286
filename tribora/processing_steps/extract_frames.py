"""
Extract Frames Step
===================

Frame sub-pipeline for videos, independent of the transcript chain:

1. Sample frames (fixed fps plus scene changes, capped at max_frames)
2. Upload each frame and insert a Frame row
3. Visual indexing: description, scene type and detected elements per frame
4. OCR: text blocks filtered by confidence threshold

Indexing and OCR run on a bounded thread pool. A frame whose indexing or OCR
fails keeps its row without that data; only a failure of sampling itself
fails the chain. If the stage fails after frames were uploaded, the uploaded
frame blobs are removed again.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Tuple

from tribora.capabilities.base import OcrBlock, SampledFrame, VisualDescription
from tribora.database.models import Frame
from tribora.processing.payloads import ExtractFramesPayload
from tribora.processing.results import StageResult
from tribora.storage.content_storage import frame_path, extension_of
from tribora.utils.error_codes import ErrorCode, PipelineError

from .base import StageHandler


def filter_ocr_blocks(blocks: List[OcrBlock], threshold: float) -> List[OcrBlock]:
    """Keep blocks with non-empty text and confidence >= threshold."""
    return [block for block in blocks if block.text.strip() and block.confidence >= threshold]


class ExtractFramesHandler(StageHandler):
    job_type = 'extract_frames'
    payload_class = ExtractFramesPayload

    def __init__(self, deps):
        super().__init__(deps)
        frames_config = self.config.get('frames', {})
        self.fps = frames_config.get('fps', 0.5)
        self.max_frames = frames_config.get('max_frames', 300)
        self.quality = frames_config.get('quality', 85)
        self.detect_scene_changes = frames_config.get('detect_scene_changes', True)
        self.scene_threshold = frames_config.get('scene_threshold', 0.3)
        self.descriptions_enabled = frames_config.get('descriptions_enabled', True)
        self.ocr_enabled = frames_config.get('ocr_enabled', True)
        self.concurrency = max(1, frames_config.get('concurrency', 5))
        self.ocr_threshold = self.config.get('ocr', {}).get('confidence_threshold', 70)

    def process(self, payload: ExtractFramesPayload, ctx) -> StageResult:
        content = self.load_content(payload)
        source_path = payload.storage_path or content.storage_path_raw
        if not source_path:
            return StageResult.failed(ErrorCode.MISSING_SOURCE, "Video has no stored source file", retryable=False)

        transcoder = self.require_capability('transcoder')
        video = self.deps.storage.download(source_path)
        sampled = transcoder.sample_frames(
            video, extension_of(source_path) or content.file_type,
            fps=self.fps, max_frames=self.max_frames, quality=self.quality,
            detect_scene_changes=self.detect_scene_changes, scene_threshold=self.scene_threshold,
        )[:self.max_frames]
        ctx.heartbeat()

        uploaded: List[str] = []
        try:
            frames = []
            for sample in sampled:
                path = frame_path(content.org_id, content.id, sample.frame_number)
                self.deps.storage.upload(path, sample.image, 'image/jpeg')
                uploaded.append(path)
                frame = Frame(
                    content_id=content.id,
                    org_id=content.org_id,
                    frame_number=sample.frame_number,
                    frame_time_sec=sample.time_sec,
                    storage_path=path,
                    width=sample.width,
                    height=sample.height,
                    size_bytes=len(sample.image),
                    is_scene_change=sample.is_scene_change,
                )
                self.deps.session.add(frame)
                frames.append((frame, sample))
            self.deps.session.flush()
            self.logger.info(f"[{content.id}] Stored {len(frames)} frame(s)")

            described, ocr_count = self._index_frames(content.id, frames, ctx)
            content.frame_count = len(frames)
            self.deps.session.flush()
        except Exception:
            self._remove_frames(content.id, uploaded)
            raise

        return StageResult.ok({'frame_count': len(frames), 'described': described, 'ocr_frames': ocr_count})

    def _remove_frames(self, content_id: str, paths: List[str]) -> None:
        """Frame rows are rolled back with the failed stage, so their blobs go too."""
        for path in paths:
            try:
                self.deps.storage.remove(path)
            except PipelineError as e:
                self.logger.error(f"[{content_id}] Could not remove frame {path} during cleanup: {e}")

    def _index_frames(self, content_id: str, frames: List[Tuple[Frame, SampledFrame]], ctx
                      ) -> Tuple[int, int]:
        vision = self.deps.vision if self.descriptions_enabled else None
        ocr = self.deps.ocr if self.ocr_enabled else None
        if not frames or (vision is None and ocr is None):
            return 0, 0

        # Capability calls run on the pool; Frame rows are only touched on this thread
        results = {}
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = {
                executor.submit(self._analyze, content_id, sample, vision, ocr): index
                for index, (_, sample) in enumerate(frames)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                ctx.heartbeat()

        described = ocr_count = 0
        for index, (frame, _) in enumerate(frames):
            description, blocks = results[index]
            if description is not None:
                frame.visual_description = description.description
                frame.scene_type = description.scene_type
                frame.detected_elements = description.detected_elements
                described += 1
            if blocks:
                frame.ocr_text = "\n".join(block.text.strip() for block in blocks)
                frame.ocr_confidence = sum(block.confidence for block in blocks) / len(blocks)
                frame.ocr_blocks = [
                    {'text': block.text, 'confidence': block.confidence, 'bbox': block.bbox}
                    for block in blocks
                ]
                ocr_count += 1
        self.deps.session.flush()
        self.logger.info(f"[{content_id}] Indexed {described} frame description(s), OCR text on {ocr_count}")
        return described, ocr_count

    def _analyze(self, content_id: str, sample: SampledFrame, vision, ocr
                 ) -> Tuple[Optional[VisualDescription], List[OcrBlock]]:
        description = None
        blocks: List[OcrBlock] = []
        if vision is not None:
            try:
                description = vision.describe(sample.image)
            except Exception as e:
                self.logger.warning(f"[{content_id}] Visual indexing failed for frame {sample.frame_number}: {e}")
        if ocr is not None:
            try:
                blocks = filter_ocr_blocks(ocr.recognize(sample.image), self.ocr_threshold)
            except Exception as e:
                self.logger.warning(f"[{content_id}] OCR failed for frame {sample.frame_number}: {e}")
        return description, blocks
