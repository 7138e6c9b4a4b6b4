"""
Pipeline Orchestrator

This module wires discovery, inspection and publication together and runs
them concurrently: one discovery thread feeds a pool of inspector workers,
whose results are published on the calling thread. The first fatal error
cancels every task and is re-raised once all of them have stopped.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Iterator, List, Optional

import requests

from systemaddons.config import PipelineSettings
from systemaddons.exceptions import CancellationError
from systemaddons.log_utils import logger
from systemaddons.utils import create_session

from .catalog import UpdateCatalogClient
from .channels import CancellationToken, Channel, ChannelClosed
from .discovery import ReleaseWalker
from .inspector import ReleaseInspector
from .interfaces import Release, ReleaseInfo
from .listing import ListingClient
from .store import KintoStore, PublishOutcome, Publisher


@dataclass
class PipelineSummary:
    """Counters reported at the end of a run."""

    min_version: str = ""
    discovered: int = 0
    created: int = 0
    already_present: int = 0
    duplicates: int = 0
    elapsed: float = 0.0

    @property
    def published(self) -> int:
        return self.created + self.already_present


class PipelineOrchestrator:
    """
    Runs the discovery, inspection and publication pipeline.

    Components are built from the settings unless injected, which lets tests
    substitute fakes for any of them.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        session: Optional[requests.Session] = None,
        listing: Optional[ListingClient] = None,
        store: Optional[KintoStore] = None,
        inspector: Optional[ReleaseInspector] = None,
    ):
        self.settings = settings
        self._owns_session = session is None
        self.session = session or create_session(pool_size=settings.worker_count)
        timeout = settings.request_timeout

        self.listing = listing or ListingClient(self.session, timeout=timeout)
        self.store = store or KintoStore(
            settings.kinto_url,
            self.session,
            auth_header=settings.kinto_auth,
            bucket=settings.kinto_bucket,
            collection=settings.kinto_collection,
            timeout=timeout,
        )
        self.inspector = inspector or ReleaseInspector(
            self.session,
            UpdateCatalogClient(settings.aus_url, self.session, timeout=timeout),
            settings.download_dir,
            extract_pattern=settings.extract_pattern,
            timeout=timeout,
        )
        self.publisher = Publisher(self.store)

    def close(self) -> None:
        """Close the HTTP session if this orchestrator created it."""
        if self._owns_session:
            self.session.close()

    def resolve_min_version(self) -> str:
        """Read the low-water-mark from the store."""
        min_version = self.store.latest_version(self.settings.latest_channel)
        if min_version:
            logger.info(f"Latest published version: {min_version}")
        else:
            logger.info("No published version found; walking every release")
        return min_version

    def build_walker(self, min_version: str = "") -> ReleaseWalker:
        return ReleaseWalker(
            self.listing,
            self.settings.selection,
            self.settings.delivery_url,
            nightly_channels=self.settings.nightly_channels,
            min_version=min_version,
            error_policy=self.settings.walk_error_policy,
        )

    def preview(self, ignore_min_version: bool = False) -> Iterator[Release]:
        """
        Iterate the releases a run would inspect, without downloading anything.

        Parameters:
            ignore_min_version (bool): Walk every release instead of only those
                newer than the latest published version.
        """
        min_version = "" if ignore_min_version else self.resolve_min_version()
        return self.build_walker(min_version).iter_releases()

    def _discover(
        self,
        walker: ReleaseWalker,
        releases: "Channel[Release]",
        token: CancellationToken,
        summary: PipelineSummary,
    ) -> None:
        try:
            for release in walker.iter_releases(token):
                releases.send(release, token)
                summary.discovered += 1
        except CancellationError:
            logger.debug("Discovery stopped")
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Release discovery failed: {exc}")
            token.fail(exc)
        finally:
            releases.close()

    def _inspect_loop(
        self,
        releases: "Channel[Release]",
        results: "Channel[ReleaseInfo]",
        token: CancellationToken,
    ) -> None:
        while True:
            try:
                release = releases.receive(token)
            except (ChannelClosed, CancellationError):
                return
            try:
                info = self.inspector.inspect(release)
                results.send(info, token)
            except CancellationError:
                return
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Failed to inspect {release.filename}: {exc}")
                token.fail(exc)
                return

    @staticmethod
    def _close_when_done(futures: List[Future], results: "Channel[ReleaseInfo]") -> None:
        wait(futures)
        results.close()

    def _publish_loop(
        self,
        results: "Channel[ReleaseInfo]",
        token: CancellationToken,
        summary: PipelineSummary,
    ) -> None:
        while True:
            try:
                info = results.receive(token)
            except (ChannelClosed, CancellationError):
                return
            try:
                outcome = self.publisher.publish(info)
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Failed to publish {info.release.filename}: {exc}")
                token.fail(exc)
                return
            if outcome is PublishOutcome.CREATED:
                summary.created += 1
            elif outcome is PublishOutcome.ALREADY_EXISTS:
                summary.already_present += 1
            else:
                summary.duplicates += 1

    def run(self) -> PipelineSummary:
        """
        Run the whole pipeline until every discovered release was handled.

        Returns:
            PipelineSummary: Counters of the run.

        Raises:
            SystemAddonsError: The first fatal error of any task, after every
                task has stopped.
            KeyboardInterrupt: After cancelling and joining all tasks.
        """
        start_time = time.time()
        logger.info("Starting systemaddons-versions pipeline...")

        summary = PipelineSummary(min_version=self.resolve_min_version())
        walker = self.build_walker(summary.min_version)

        token = CancellationToken()
        releases: "Channel[Release]" = Channel("releases")
        results: "Channel[ReleaseInfo]" = Channel("results")

        worker_count = self.settings.worker_count
        discovery_thread = threading.Thread(
            target=self._discover,
            args=(walker, releases, token, summary),
            name="discovery",
            daemon=True,
        )
        executor = ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="inspector"
        )
        futures = [
            executor.submit(self._inspect_loop, releases, results, token)
            for _ in range(worker_count)
        ]
        closer_thread = threading.Thread(
            target=self._close_when_done,
            args=(futures, results),
            name="results-closer",
            daemon=True,
        )

        discovery_thread.start()
        closer_thread.start()
        try:
            self._publish_loop(results, token, summary)
        except KeyboardInterrupt:
            logger.warning("Interrupted; stopping pipeline")
            token.cancel("pipeline interrupted")
            raise
        finally:
            discovery_thread.join()
            executor.shutdown(wait=True)
            closer_thread.join()

        summary.elapsed = time.time() - start_time
        if token.error is not None:
            raise token.error

        logger.info(
            f"Pipeline finished in {summary.elapsed:.1f} seconds: "
            f"{summary.discovered} discovered, {summary.created} created, "
            f"{summary.already_present} already present, "
            f"{summary.duplicates} duplicates"
        )
        return summary
