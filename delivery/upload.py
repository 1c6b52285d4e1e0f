"""
Upload stage - delivers exported clips to a local directory or a Drive folder.

Unlike the batch exporter, delivery continues past per-item failures:
the clips are already encoded, so every item that can be delivered is.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from core.errors import DeliveryError, ItemUploadFailed
from core.models import Artifact
from delivery.drive import DriveClient

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    """Result of delivering one artifact."""
    filename: str
    delivered: bool
    cause: Optional[str] = None
    location: Optional[str] = None  # Local path or Drive file ID


@dataclass
class DeliveryReport:
    """Per-artifact outcomes of a delivery run."""
    sink: str
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def delivered_count(self) -> int:
        return sum(1 for o in self.outcomes if o.delivered)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.delivered)

    @property
    def all_delivered(self) -> bool:
        return self.failed_count == 0

    @property
    def partial(self) -> bool:
        """Some, but not all, artifacts were delivered."""
        return self.delivered_count > 0 and self.failed_count > 0

    def summary(self) -> str:
        total = len(self.outcomes)
        if self.all_delivered:
            return f"Delivered all {total} clips ({self.sink})"
        if self.partial:
            failed = ", ".join(o.filename for o in self.outcomes if not o.delivered)
            return f"Delivered {self.delivered_count} of {total} clips ({self.sink}); failed: {failed}"
        return f"Failed to deliver all {total} clips ({self.sink})"


class DeliverySink(Protocol):
    """Destination for delivered artifacts."""

    name: str

    def prepare(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def send(self, artifact: Artifact) -> str:
        ...


class LocalSink:
    """Saves artifacts into a directory, pausing between saves."""

    name = "local"

    def __init__(
        self,
        output_dir: str,
        delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.output_dir = Path(output_dir)
        self.delay = delay
        self._sleep = sleep

    def prepare(self):
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeliveryError(f"Invalid output directory {self.output_dir}: {e}") from e

    def pause(self):
        if self.delay > 0:
            self._sleep(self.delay)

    def send(self, artifact: Artifact) -> str:
        # Keep writes inside output_dir whatever the filename contains
        path = self.output_dir / Path(artifact.filename).name
        try:
            path.write_bytes(artifact.payload)
        except OSError as e:
            raise ItemUploadFailed(artifact.filename, str(e)) from e
        return str(path)


class RemoteSink:
    """Uploads artifacts into a Drive folder."""

    name = "drive"

    def __init__(self, client: DriveClient, folder_id: str):
        self.client = client
        self.folder_id = folder_id

    def prepare(self):
        user = self.client.validate_token()
        logger.info(f"Uploading to Drive folder {self.folder_id} as {user or 'unknown user'}")

    def pause(self):
        pass

    def send(self, artifact: Artifact) -> str:
        return self.client.upload(
            artifact.filename, artifact.payload, artifact.mime_type, self.folder_id
        )


class UploadStage:
    """Delivers artifacts to a sink, recording an outcome per artifact."""

    def deliver(self, artifacts: Sequence[Artifact], sink: DeliverySink) -> DeliveryReport:
        """
        Deliver artifacts in order.

        Every artifact is released once its outcome is known, including when
        the sink rejects the whole delivery up front.

        Args:
            artifacts: Artifacts in delivery order
            sink: LocalSink or RemoteSink

        Returns:
            DeliveryReport with one outcome per artifact

        Raises:
            Unauthenticated: If a remote sink's credential is missing or rejected
            DeliveryError: If the sink can't be prepared; no items are attempted
        """
        try:
            sink.prepare()
        except DeliveryError as e:
            logger.error(f"Delivery to {sink.name} aborted: {e}")
            for artifact in artifacts:
                artifact.release()
            raise

        report = DeliveryReport(sink=sink.name)
        try:
            for i, artifact in enumerate(artifacts):
                if i > 0:
                    sink.pause()
                try:
                    location = sink.send(artifact)
                except DeliveryError as e:
                    logger.warning(f"Failed to deliver {artifact.filename}: {e}")
                    report.outcomes.append(
                        DeliveryOutcome(filename=artifact.filename, delivered=False, cause=str(e))
                    )
                else:
                    report.outcomes.append(
                        DeliveryOutcome(filename=artifact.filename, delivered=True, location=location)
                    )
                finally:
                    artifact.release()
        finally:
            # An unexpected error still frees the artifacts not yet attempted
            for artifact in artifacts:
                artifact.release()

        logger.info(report.summary())
        return report
