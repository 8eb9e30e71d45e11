#!/usr/bin/env python3
"""
Pipeline Orchestration - RPKI Dash daily batch

Runs the stages of one dated snapshot strictly in order, each behind a full
barrier:
1. VRP export load (collection replaced)
2. IPv4 and IPv6 route dump ingestion
3. Route origin validation
4. Registry (RIR) annotation
5. Snapshot summary

All stages share one record store and one bounded executor. A fatal error
in any stage propagates and ends the run; there is no partial-result mode.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..collectors.feeds import FeedFetcher
from ..database.core import RecordStore
from ..database.snapshots import Snapshot
from ..models import PipelineResult, SnapshotSummary
from ..processors.ingestion import DEFAULT_MIN_PEER_COUNT, RouteIngestor, VrpIngestor
from ..processors.registry import MATCH_CIDR, RegistryAnnotator
from ..reports.summary import SummaryWriter, build_summary
from ..utils.config import FeedConfig, RPKIDashConfig
from ..utils.error_handling import ConfigurationError
from ..utils.parallel import BoundedExecutor, StageReport
from ..validators.rov import RouteOriginValidator


@dataclass
class PipelineConfig:
    """Pipeline execution configuration"""
    date: str
    feeds: FeedConfig = field(default_factory=FeedConfig)
    min_peer_count: int = DEFAULT_MIN_PEER_COUNT
    reset_before_validation: bool = True
    ipv4_match_mode: str = MATCH_CIDR
    report_dir: Optional[str] = None

    @classmethod
    def from_config(cls, config: RPKIDashConfig, date: str) -> 'PipelineConfig':
        return cls(
            date=date,
            feeds=config.feeds,
            min_peer_count=config.ingestion.min_peer_count,
            reset_before_validation=config.validation.reset_before_validation,
            ipv4_match_mode=config.registry.ipv4_match_mode,
            report_dir=config.reports.output_dir,
        )


def _stage_dict(report: StageReport) -> dict:
    return {
        'submitted': report.submitted,
        'completed': report.completed,
        'duration': round(report.duration, 3),
        'outcomes': dict(report.outcomes),
    }


class RPKIDashPipeline:
    """Daily snapshot pipeline orchestrator"""

    def __init__(self, config: PipelineConfig, store: RecordStore,
                 executor: BoundedExecutor, fetcher: FeedFetcher,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.store = store
        self.executor = executor
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)
        self.snapshot = Snapshot.for_date(config.date)
        self.result = PipelineResult(date=self.snapshot.date)

        self.vrp_ingestor = VrpIngestor(store, executor)
        self.route_ingestor = RouteIngestor(store, executor, min_peer_count=config.min_peer_count)
        self.validator = RouteOriginValidator(
            store, executor, reset_before_validation=config.reset_before_validation
        )
        self.annotator = RegistryAnnotator(store, executor, ipv4_match_mode=config.ipv4_match_mode)

    def load_vrps(self) -> StageReport:
        """Stage 1: replace the snapshot's VRP collection"""
        lines = self.fetcher.fetch_lines(self.config.feeds.vrp_url)
        report = self.vrp_ingestor.ingest(lines, self.snapshot.vrp)
        self.result.stages['vrp'] = _stage_dict(report)
        return report

    def load_routes(self):
        """Stage 2: ingest the IPv4 then the IPv6 route dump"""
        for family, url in ((4, self.config.feeds.routes_v4_url),
                            (6, self.config.feeds.routes_v6_url)):
            lines = self.fetcher.fetch_lines(url)
            report = self.route_ingestor.ingest(lines, self.snapshot.routes,
                                                source=f"IPv{family} route dump")
            self.result.stages[f'routes_v{family}'] = _stage_dict(report)

    def validate(self) -> StageReport:
        """Stage 3: route origin validation"""
        self._require_collections()
        report = self.validator.validate(self.snapshot)
        self.result.stages['validation'] = _stage_dict(report)
        return report

    def annotate(self):
        """Stage 4: RIR annotation, IPv4 then IPv6"""
        self._require_collections(vrp=False)
        for family, url in ((4, self.config.feeds.registry_v4_url),
                            (6, self.config.feeds.registry_v6_url)):
            rows = self.fetcher.fetch_table(url)
            report = self.annotator.annotate(rows, family, self.snapshot.routes)
            self.result.stages[f'registry_v{family}'] = _stage_dict(report)

    def summarize(self) -> SnapshotSummary:
        """Stage 5: counts for the finished snapshot, optionally written as YAML"""
        summary = build_summary(self.store, self.snapshot)
        self.result.summary = summary
        for line in summary.to_summary().splitlines():
            self.logger.info(line)
        if self.config.report_dir:
            path = SummaryWriter(Path(self.config.report_dir)).write(summary)
            self.result.report_file = str(path)
        return summary

    def _require_collections(self, vrp: bool = True):
        missing = [name for name in (self.snapshot.routes, self.snapshot.vrp if vrp else None)
                   if name and not self.store.collection_exists(name)]
        if missing:
            raise ConfigurationError(
                f"Snapshot {self.snapshot.date} has no collection(s): {', '.join(missing)}",
                guidance="Run the full pipeline for this date first"
            )

    def run(self) -> PipelineResult:
        """Execute every stage in order"""
        start_time = time.time()
        self.logger.info(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        self.load_vrps()
        self.load_routes()
        self.validate()
        self.annotate()
        self.summarize()

        self.result.execution_time = time.time() - start_time
        self.logger.info(f"Finished at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')} "
                         f"({self.result.execution_time:.1f}s)")
        return self.result


def build_pipeline(config: RPKIDashConfig, date: str):
    """
    Construct a pipeline and its collaborators from configuration.

    Returns (pipeline, closer); call closer() to release the executor,
    fetcher and store.
    """
    store = RecordStore(config.store.db_path)
    executor = BoundedExecutor(max_workers=config.concurrency.max_workers,
                               show_progress=config.concurrency.show_progress)
    fetcher = FeedFetcher(timeout=config.feeds.timeout)
    pipeline = RPKIDashPipeline(PipelineConfig.from_config(config, date), store, executor, fetcher)

    def closer():
        executor.shutdown()
        fetcher.close()
        store.close()

    return pipeline, closer


def run_pipeline(config: RPKIDashConfig, date: str) -> PipelineResult:
    """Run the full daily pipeline for one snapshot date"""
    pipeline, closer = build_pipeline(config, date)
    try:
        return pipeline.run()
    finally:
        closer()
