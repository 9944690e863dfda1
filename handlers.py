"""
Queue dispatch handlers: pop one message, validate it, run the matching
processor and acknowledge the message by archiving it.
"""

import logging
from typing import Optional, Type

from pydantic import BaseModel, ValidationError

from message_queue import MessageQueue
from schemas import HandlerResponse, SegmentMessage, VideoMessage
from services import SegmentProcessor, VideoProcessor
from store import RecordStore


class QueueHandler:
    """
    One pass over one queue. Outcomes:
      200 no message / processed (archived)
      400 malformed payload (archived, never dispatched)
      422 processing failed (archived, not retried)
      500 unexpected error (left on the queue for redelivery)
    """

    payload_model: Type[BaseModel] = BaseModel
    id_field: str = ""
    kind: str = ""

    def __init__(self, queue: MessageQueue):
        self.queue = queue

    def process(self, entity_id: str) -> Optional[str]:
        raise NotImplementedError

    def handle(self) -> HandlerResponse:
        try:
            logging.info(f"Starting {self.kind} processing from queue: {self.queue.queue_name}")
            item = self.queue.pop()
            if item is None:
                logging.info("No messages in queue")
                return HandlerResponse(status_code=200, body={"message": "No messages in queue"})

            try:
                payload = self.payload_model.model_validate(item.message)
            except ValidationError:
                logging.error(f"❌ Invalid message format: {item.message!r}")
                self.queue.archive(item.msg_id)
                return HandlerResponse(
                    status_code=400,
                    body={
                        "error": "Invalid message format",
                        "message": "Message archived due to invalid format",
                    },
                )

            entity_id = getattr(payload, self.id_field)
            logging.info(f"Processing {self.kind} {entity_id}")
            error = f"Failed to process {self.kind}"
            try:
                video_url = self.process(entity_id)
            except Exception as e:
                logging.exception(f"❌ Error processing {self.kind} {entity_id}: {e}")
                video_url, error = None, str(e)

            self.queue.archive(item.msg_id)

            if not video_url:
                logging.error(f"❌ Failed to process {self.kind} {entity_id}. Message archived.")
                return HandlerResponse(
                    status_code=422,
                    body={
                        "message": f"Failed to process {self.kind} {entity_id}. Message archived.",
                        "error": error,
                    },
                )

            logging.info(f"✅ Successfully processed {self.kind} {entity_id}")
            return HandlerResponse(
                status_code=200,
                body={"message": f"Successfully processed {self.kind} {entity_id}", "videoURL": video_url},
            )
        except Exception as e:
            logging.exception(f"❌ Unhandled error in {self.kind} handler: {e}")
            return HandlerResponse(status_code=500, body={"error": str(e)})


class SegmentQueueHandler(QueueHandler):
    """Standalone segment renders; owns the segment's status on this path."""

    payload_model = SegmentMessage
    id_field = "segmentId"
    kind = "segment"

    def __init__(self, queue: MessageQueue, processor: SegmentProcessor, store: RecordStore):
        super().__init__(queue)
        self.processor = processor
        self.store = store

    def process(self, segment_id: str) -> Optional[str]:
        video_url = self.processor.process(segment_id)
        if video_url and self.store.complete_segment(segment_id, video_url):
            return video_url
        if video_url:
            logging.error(f"❌ Update failed: segment {segment_id} not found")
        self.store.fail_segment(segment_id)
        return None


class VideoQueueHandler(QueueHandler):
    payload_model = VideoMessage
    id_field = "videoId"
    kind = "video"

    def __init__(self, queue: MessageQueue, processor: VideoProcessor):
        super().__init__(queue)
        self.processor = processor

    def process(self, video_id: str) -> Optional[str]:
        return self.processor.process(video_id)
