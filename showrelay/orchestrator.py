"""Per-job orchestration: verify inputs, fan out to destinations, archive.

One JobOrchestrator.run call owns a job's working directory from the moment it
marks the job ``processing`` until the archive record is written and the
directory is gone.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from .config import Settings, parse_destinations
from .destinations import DestinationAdapter, DestinationResult, build_adapters
from .jobs import (
    COMPLETED,
    ERROR,
    PROCESSING,
    InputError,
    JobClaimed,
    JobInputs,
    JobMetadata,
    StatusRecord,
    StatusStore,
    Track,
)
from .metadata import AudioProbe
from .organizers import ArchiveError, ArchiveManager
from .tracklist import TracklistError, TracklistParser


logger = logging.getLogger("relay.orchestrator")


class JobOrchestrator:
    def __init__(
        self,
        status_store: StatusStore,
        archive_manager: ArchiveManager,
        adapters: Dict[str, DestinationAdapter],
        parser: Optional[TracklistParser] = None,
        probe: Optional[AudioProbe] = None,
        default_destinations: Optional[List[str]] = None,
    ):
        self.status_store = status_store
        self.archive_manager = archive_manager
        self.adapters = adapters
        self.parser = parser or TracklistParser()
        self.probe = probe or AudioProbe()
        self.default_destinations = list(default_destinations or adapters.keys())

    def run(self, job_id: str) -> StatusRecord:
        """Process one job to a terminal status and archive it when completed.

        Only one orchestrator, in any process, works on a job at a time. A
        caller that loses the claim gets the current record back untouched.
        """
        workspace = self.status_store.workspace(job_id)
        if not workspace.exists():
            archived = self.status_store.lookup(job_id)
            if archived is not None:
                return archived
            return self._fail(job_id, f"Job directory not found: {workspace.path}")

        try:
            with workspace.claim():
                return self._run_claimed(job_id)
        except JobClaimed as e:
            logger.warning(f"{job_id}: {e}; leaving it to its owner")
            return self.status_store.lookup(job_id) or StatusRecord(job_id=job_id, status=PROCESSING, message=str(e))

    def _run_claimed(self, job_id: str) -> StatusRecord:
        current = self.status_store.get(job_id)
        if current is not None and current.status == COMPLETED:
            logger.info(f"{job_id} already completed; retrying archival")
            return self._archive(job_id, current)
        if current is not None and current.status == PROCESSING:
            # only a stale reset hands an orphaned job back, as received
            logger.warning(f"{job_id} is already processing; not starting it again")
            return current

        try:
            return self._run(job_id)
        except Exception as e:
            logger.exception(f"Unexpected error while processing {job_id}")
            message = f"Processing error: {e}"
            if not self.status_store.workspace(job_id).exists():
                return self.status_store.lookup(job_id) or StatusRecord(job_id=job_id, status=ERROR, message=message)
            return self.status_store.update(job_id, ERROR, message, force=True)

    def _run(self, job_id: str) -> StatusRecord:
        workspace = self.status_store.workspace(job_id)
        try:
            workspace.verify_inputs()
        except InputError as e:
            logger.error(f"{job_id}: {e}")
            return self._fail(job_id, str(e))

        self.status_store.update(job_id, PROCESSING, "Processing started")
        metadata = workspace.load_metadata()

        songs = workspace.load_songs()
        if songs is None:
            try:
                songs = self.parser.parse_tracks(workspace.tracklist_file)
            except TracklistError as e:
                logger.error(f"{job_id}: {e}")
                return self.status_store.update(job_id, ERROR, f"Tracklist parse failed: {e}")
            workspace.save_songs(songs)

        inputs = JobInputs(
            job_id=job_id,
            metadata=metadata,
            songs=songs,
            audio_path=workspace.audio_file,
            artwork_path=workspace.artwork_file,
            audio_info=self.probe.probe(workspace.audio_file),
        )
        destinations = self.resolve_destinations(metadata)
        self.status_store.update(
            job_id, PROCESSING, f"Publishing to {', '.join(destinations) or 'no destinations'}", destinations={}
        )

        results = self.publish_all(inputs, destinations)
        ok = sum(1 for r in results.values() if r["success"])
        record = self.status_store.update(
            job_id,
            COMPLETED,
            f"Processing completed ({ok}/{len(results)} destinations succeeded)",
            destinations=results,
        )
        return self._archive(job_id, record, metadata=metadata, songs=songs, audio_info=inputs.audio_info)

    def resolve_destinations(self, metadata: JobMetadata) -> List[str]:
        return parse_destinations(metadata.destinations) or list(self.default_destinations)

    def publish_all(self, inputs: JobInputs, destinations: List[str]) -> Dict[str, Dict]:
        """Publish to every destination concurrently; one failing never affects another."""
        results: Dict[str, Dict] = {}
        runnable: Dict[str, DestinationAdapter] = {}
        for name in destinations:
            adapter = self.adapters.get(name)
            if adapter is None:
                results[name] = DestinationResult.failure(f"Unknown destination: {name}", step="config").to_dict()
            else:
                runnable[name] = adapter
        if not runnable:
            return results

        with ThreadPoolExecutor(max_workers=len(runnable), thread_name_prefix=f"publish-{inputs.job_id[:8]}") as pool:
            futures = {pool.submit(self._publish_one, adapter, inputs): name for name, adapter in runnable.items()}
            for future in as_completed(futures):
                name = futures[future]
                results[name] = future.result().to_dict()
                logger.info(f"{inputs.job_id}: {name} {'succeeded' if results[name]['success'] else 'failed'}")
                self.status_store.update(
                    inputs.job_id,
                    PROCESSING,
                    f"{len(results)}/{len(destinations)} destinations finished",
                    destinations=dict(results),
                )
        return results

    def _publish_one(self, adapter: DestinationAdapter, inputs: JobInputs) -> DestinationResult:
        try:
            metadata = adapter.build_metadata(inputs)
            return adapter.publish(inputs.audio_path, metadata)
        except Exception as e:
            logger.exception(f"{adapter.name} failed unexpectedly for {inputs.job_id}")
            return DestinationResult.failure(str(e) or e.__class__.__name__, step="unexpected")

    def _archive(
        self,
        job_id: str,
        record: StatusRecord,
        metadata: Optional[JobMetadata] = None,
        songs: Optional[List[Track]] = None,
        audio_info: Optional[Dict] = None,
    ) -> StatusRecord:
        workspace = self.status_store.workspace(job_id)
        try:
            if metadata is None:
                metadata = workspace.load_metadata()
            if songs is None:
                songs = workspace.load_songs() or []
            path = self.archive_manager.archive_job(job_id, record, metadata, songs, audio_info)
        except (ArchiveError, InputError) as e:
            logger.error(f"Archival failed for {job_id}; keeping working directory: {e}")
            return self.status_store.update(
                job_id, COMPLETED, f"Processing completed; archival failed: {e}", destinations=record.destinations
            )
        record.archive = str(path.relative_to(self.archive_manager.archive_dir))
        return record

    def _fail(self, job_id: str, message: str) -> StatusRecord:
        if self.status_store.exists(job_id):
            return self.status_store.update(job_id, ERROR, message)
        if self.status_store.workspace(job_id).exists():
            return self.status_store.update(job_id, ERROR, message, force=True)
        # nowhere to persist a status for a job without a directory
        return StatusRecord(job_id=job_id, status=ERROR, message=message)


def build_orchestrator(settings: Settings, clients: Optional[Dict] = None) -> JobOrchestrator:
    """Wire a fresh orchestrator and its collaborators for one job run."""
    archive_manager = ArchiveManager(settings.archive_dir, settings.received_dir)
    store = StatusStore(settings.received_dir, archive_manager=archive_manager)
    return JobOrchestrator(
        status_store=store,
        archive_manager=archive_manager,
        adapters=build_adapters(settings, clients=clients),
        parser=TracklistParser(),
        probe=AudioProbe(),
        default_destinations=settings.default_destinations,
    )
