"""Batch orchestrator for relationship discovery.

A track batch moves through four phases, each recorded on a frozen
:class:`BatchState` via ``model_copy``:

    FETCHING     read one page of tracks from the track store
    PROCESSING   parse each track, resolve names, then enrich the page's
                 main artists through the provider clients
    WRITING      one graph-writer call for edges, then credits and labels
    SUMMARIZING  persist quota counters and build the summary

Per-item failures are recorded in ``errors`` and never stop the batch.
Only configuration problems (unknown or unconfigured providers, an
unreachable track store) are raised.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from artistgraph.interfaces.artist_store import IArtistStore
from artistgraph.interfaces.music_db_provider import IMusicMetadataProvider
from artistgraph.interfaces.quota_store import IQuotaStateStore
from artistgraph.interfaces.relationship_store import IRelationshipStore
from artistgraph.interfaces.track_store import ITrackStore
from artistgraph.models.entities import (
    ArtistProfile,
    CreatedVia,
    CreditType,
    LabelRelationship,
    Relationship,
    RelationshipType,
    TrackCredit,
    TrackRecord,
    TrackSource,
)
from artistgraph.models.pipeline import (
    PHASE_TRANSITIONS,
    SAMPLE_SIZE,
    ArtistBatchRequest,
    ArtistBatchSummary,
    BatchCursor,
    BatchErrorRecord,
    BatchPhase,
    BatchRequest,
    BatchState,
    BatchSummary,
    DiscoverArtistRequest,
    DiscoverArtistResult,
    RelationshipSample,
    WriteResult,
)
from artistgraph.models.provider import NetworkOptions
from artistgraph.services.artist_resolver import ArtistResolver
from artistgraph.services.enrichment_service import EnrichmentResult, EnrichmentService
from artistgraph.services.graph_writer import GraphWriter
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.services.relationship_extractor import RelationshipExtractor
from artistgraph.utils.concurrency import bounded_map
from artistgraph.utils.errors import (
    ArtistGraphError,
    ConfigurationError,
    InvalidNameError,
    PipelineError,
    StorageWriteError,
)
from artistgraph.utils.logging import get_logger

_PARSE_SOURCE = "track-parsing"

# Confidence of credits derived from string parsing.
_CONFIDENCE_MAIN = 1.0
_CONFIDENCE_SPLIT_MAIN = 0.8
_CONFIDENCE_PARSED = 0.7

_CREDIT_FOR_TYPE: dict[RelationshipType, CreditType] = {
    RelationshipType.FEATURED: CreditType.FEATURED_ARTIST,
    RelationshipType.REMIX: CreditType.REMIXER,
}


@dataclass
class _TrackOutcome:
    """What one track contributed to the batch."""

    relationships: list[Relationship] = field(default_factory=list)
    credits: list[TrackCredit] = field(default_factory=list)
    profiles: dict[str, ArtistProfile] = field(default_factory=dict)
    enrich_targets: list[ArtistProfile] = field(default_factory=list)
    invalid_names: int = 0


@dataclass
class _EnrichmentTotals:
    relationships: list[Relationship] = field(default_factory=list)
    labels: list[LabelRelationship] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    enriched: int = 0
    deferred: int = 0
    invalid_names: int = 0


class BatchOrchestrator:
    """Runs discovery batches over tracks, stored artists, or a single artist.

    All collaborators are injected; the orchestrator creates none of them.
    """

    def __init__(
        self,
        track_store: ITrackStore,
        artist_store: IArtistStore,
        relationship_store: IRelationshipStore,
        extractor: RelationshipExtractor,
        resolver: ArtistResolver,
        enrichment_service: EnrichmentService,
        graph_writer: GraphWriter,
        quota_manager: QuotaManager,
        providers: dict[str, IMusicMetadataProvider],
        quota_store: IQuotaStateStore | None = None,
        workers: int = 4,
        network_options: NetworkOptions | None = None,
    ) -> None:
        self._track_store = track_store
        self._artist_store = artist_store
        self._relationship_store = relationship_store
        self._extractor = extractor
        self._resolver = resolver
        self._enrichment = enrichment_service
        self._writer = graph_writer
        self._quota = quota_manager
        self._providers = providers
        self._quota_store = quota_store
        self._workers = max(1, workers)
        self._network_options = network_options or NetworkOptions()
        self._quota_restored = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _advance(self, state: BatchState, phase: BatchPhase) -> BatchState:
        if phase not in PHASE_TRANSITIONS[state.phase]:
            raise PipelineError(
                message=f"Invalid batch transition {state.phase.value} -> {phase.value}"
            )
        self._logger.info(
            "batch_phase_changed",
            batch_id=state.batch_id,
            from_phase=state.phase.value,
            to_phase=phase.value,
        )
        update: dict[str, object] = {"phase": phase}
        if phase is BatchPhase.SUMMARIZING:
            update["completed_at"] = datetime.now(tz=timezone.utc)  # noqa: UP017
        return state.model_copy(update=update)

    @staticmethod
    def _with_errors(state: BatchState, errors: list[BatchErrorRecord]) -> BatchState:
        if not errors:
            return state
        return state.model_copy(update={"errors": [*state.errors, *errors]})

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def validate_providers(self, names: list[str]) -> None:
        """Raise ``ConfigurationError`` for unknown or unconfigured providers."""
        for name in names:
            client = self._providers.get(name)
            if client is None:
                raise ConfigurationError(
                    message=f"Unknown provider '{name}'; known: {sorted(self._providers)}"
                )
            if not client.is_available():
                raise ConfigurationError(
                    message="Provider credentials are not configured",
                    provider_name=name,
                )

    async def _restore_quota(self) -> None:
        if self._quota_restored or self._quota_store is None:
            return
        self._quota.restore(await self._quota_store.load_states())
        self._quota_restored = True

    async def _persist_quota(self, state: BatchState) -> BatchState:
        if self._quota_store is None:
            return state
        try:
            await self._quota_store.save_states(self._quota.snapshot())
        except StorageWriteError as exc:
            self._logger.warning("quota_state_persist_failed", error=str(exc))
            return self._with_errors(
                state, [BatchErrorRecord(phase=BatchPhase.SUMMARIZING, message=str(exc))]
            )
        return state

    # ------------------------------------------------------------------
    # Track batches
    # ------------------------------------------------------------------

    async def run_track_batch(
        self,
        request: BatchRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchSummary:
        """Process one page of tracks and return its summary and next cursor.

        Raises
        ------
        ConfigurationError
            If a requested provider is unknown or unconfigured, or the
            track store cannot be read.  Raised after the parsed
            relationships are written when a provider fails fatally
            mid-batch.
        """
        self.validate_providers(request.providers)
        await self._restore_quota()

        state = BatchState(batch_id=str(uuid.uuid4()), request=request)
        log = self._logger.bind(batch_id=state.batch_id)
        log.info(
            "track_batch_started",
            limit=request.limit,
            offset=request.offset,
            source=request.source.value,
            providers=request.providers,
        )

        tracks = await self._track_store.fetch_page(
            request.source.track_sources(), request.limit, request.offset
        )
        state = state.model_copy(update={"items_total": len(tracks)})
        state = self._advance(state, BatchPhase.PROCESSING)

        relationships: list[Relationship] = []
        credits: list[TrackCredit] = []
        profiles: dict[str, ArtistProfile] = {}
        enrich_targets: dict[str, ArtistProfile] = {}
        invalid_names = 0
        errors: list[BatchErrorRecord] = []
        processed = 0
        cancelled = False

        for track in tracks:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                log.info("track_batch_cancelled", processed=processed)
                break
            processed += 1
            try:
                outcome = await self._process_track(track)
            except ArtistGraphError as exc:
                if isinstance(exc, InvalidNameError):
                    invalid_names += 1
                errors.append(
                    BatchErrorRecord(
                        phase=BatchPhase.PROCESSING,
                        message=str(exc),
                        item=f"track {track.track_id}",
                    )
                )
                log.warning("track_processing_failed", track_id=track.track_id, error=str(exc))
                continue
            relationships.extend(outcome.relationships)
            credits.extend(outcome.credits)
            profiles.update(outcome.profiles)
            for profile in outcome.enrich_targets:
                enrich_targets.setdefault(profile.id, profile)
            invalid_names += outcome.invalid_names

        state = state.model_copy(update={"items_processed": processed, "cancelled": cancelled})

        labels: list[LabelRelationship] = []
        deferred = 0
        fatal: ConfigurationError | None = None
        if request.providers and enrich_targets and not cancelled:
            try:
                totals = await self._enrich_profiles(list(enrich_targets.values()), request.providers)
            except ConfigurationError as exc:
                # Parsed edges are still written before the batch aborts.
                fatal = exc
                log.error("track_batch_enrichment_aborted", error=str(exc))
            else:
                relationships.extend(totals.relationships)
                labels.extend(totals.labels)
                deferred = totals.deferred
                invalid_names += totals.invalid_names
                errors.extend(
                    BatchErrorRecord(phase=BatchPhase.PROCESSING, message=m) for m in totals.errors
                )

        state = self._with_errors(state, errors)
        state = self._advance(state, BatchPhase.WRITING)
        write_result, credit_result, label_result = await self._write_all(relationships, credits, labels)
        state = self._with_errors(state, self._write_errors(write_result, credit_result, label_result))

        state = self._advance(state, BatchPhase.SUMMARIZING)
        state = await self._persist_quota(state)
        if fatal is not None:
            raise fatal

        touched = set(profiles)
        for rel in write_result.relationships:
            touched.update((rel.source_artist_id, rel.target_artist_id))

        next_offset = request.offset + (processed if cancelled else request.limit)
        summary = BatchSummary(
            tracks_processed=processed,
            artists_found=len(touched),
            relationships_discovered=len(relationships),
            relationships_saved=write_result.written,
            credits_created=credit_result.written,
            labels_linked=label_result.written,
            invalid_names=invalid_names,
            quota_deferred=deferred,
            cancelled=cancelled,
            next_batch=BatchCursor(offset=next_offset, limit=request.limit, source=request.source),
            sample_relationships=await self._samples(write_result.relationships),
            errors=[e.render() for e in state.errors],
        )
        log.info(
            "track_batch_complete",
            tracks_processed=summary.tracks_processed,
            relationships_saved=summary.relationships_saved,
            errors=len(summary.errors),
        )
        return summary

    async def _process_track(self, track: TrackRecord) -> _TrackOutcome:
        """Parse and resolve one track.  Raises on malformed records.

        ``InvalidNameError`` means the main artist is unusable and is
        counted with the other rejected names.
        """
        if track.defect:
            raise PipelineError(message=track.defect)
        if not track.artist or not track.artist.strip():
            raise InvalidNameError(message="Track has no artist")
        if track.title is None:
            raise PipelineError(message="Track has no title")

        outcome = _TrackOutcome()
        evidence = f"{track.source.value}:{track.track_id}"

        main_names = self._extractor.split_artist_field(track.artist)
        main_profile = await self._resolver.resolve(main_names[0], CreatedVia.TRACK_PARSING)
        outcome.profiles[main_profile.id] = main_profile
        split_parts = main_names[1:]
        outcome.credits.append(
            self._credit(
                track,
                main_profile,
                CreditType.MAIN_ARTIST,
                _CONFIDENCE_SPLIT_MAIN if split_parts else _CONFIDENCE_MAIN,
            )
        )

        if not split_parts:
            outcome.enrich_targets.append(main_profile)
        for part in split_parts:
            try:
                part_profile = await self._resolver.resolve(part, CreatedVia.TRACK_PARSING)
            except InvalidNameError:
                outcome.invalid_names += 1
                continue
            outcome.profiles[part_profile.id] = part_profile
            outcome.enrich_targets.append(part_profile)
            outcome.credits.append(
                self._credit(track, part_profile, CreditType.MAIN_ARTIST, _CONFIDENCE_SPLIT_MAIN)
            )

        for candidate in self._extractor.extract(track.artist, track.title):
            try:
                source = await self._resolver.resolve(candidate.source_name, CreatedVia.TRACK_PARSING)
                target = await self._resolver.resolve(candidate.target_name, CreatedVia.TRACK_PARSING)
            except InvalidNameError as exc:
                outcome.invalid_names += 1
                self._logger.debug(
                    "candidate_name_rejected", track_id=track.track_id, error=str(exc)
                )
                continue
            outcome.profiles[source.id] = source
            outcome.profiles[target.id] = target
            outcome.relationships.append(
                Relationship(
                    source_artist_id=source.id,
                    target_artist_id=target.id,
                    type=candidate.type,
                    strength=candidate.strength,
                    collaboration_count=1,
                    evidence_tracks=[evidence],
                    source_data=[
                        {
                            "source": _PARSE_SOURCE,
                            "rule": candidate.rule,
                            "matched_text": candidate.matched_text,
                            "track_table": track.table,
                        }
                    ],
                )
            )
            credit_type = _CREDIT_FOR_TYPE.get(candidate.type)
            if credit_type is not None:
                outcome.credits.append(self._credit(track, target, credit_type, _CONFIDENCE_PARSED))

        return outcome

    @staticmethod
    def _credit(
        track: TrackRecord,
        profile: ArtistProfile,
        credit_type: CreditType,
        confidence: float,
    ) -> TrackCredit:
        return TrackCredit(
            track_id=track.track_id,
            track_table=track.table,
            artist_id=profile.id,
            credit_type=credit_type,
            source_api=_PARSE_SOURCE,
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Shared enrichment / writing
    # ------------------------------------------------------------------

    async def _enrich_profiles(
        self,
        targets: list[ArtistProfile],
        provider_names: list[str],
        options: NetworkOptions | None = None,
    ) -> _EnrichmentTotals:
        """Enrich *targets* with at most ``workers`` running concurrently."""
        exhausted: set[str] = {p for p in provider_names if self._quota.is_exhausted(p)}
        totals = _EnrichmentTotals()

        async def _one(profile: ArtistProfile) -> EnrichmentResult:
            result = await self._enrichment.enrich(
                profile, provider_names, options=options, skip_providers=exhausted
            )
            exhausted.update(result.exhausted_providers)
            return result

        for profile, result in await bounded_map(
            _one, targets, workers=self._workers, logger=self._logger, error_msg="enrichment_task_failed"
        ):
            if isinstance(result, BaseException):
                if isinstance(result, ConfigurationError) or not isinstance(result, Exception):
                    raise result
                totals.errors.append(f"{profile.name}: {result}")
                continue
            totals.relationships.extend(result.relationships)
            totals.labels.extend(result.labels)
            totals.errors.extend(result.errors)
            totals.deferred += result.deferred_calls
            totals.invalid_names += result.invalid_names
            if result.providers_succeeded:
                totals.enriched += 1

        for provider in sorted(exhausted):
            totals.errors.append(
                f"[{provider}] Daily request quota exceeded; provider halted for this run"
            )
        return totals

    async def _write_all(
        self,
        relationships: list[Relationship],
        credits: list[TrackCredit],
        labels: list[LabelRelationship],
    ) -> tuple[WriteResult, WriteResult, WriteResult]:
        write_result = await self._writer.upsert_edges(relationships)
        credit_result = await self._writer.upsert_credits(credits)
        label_result = await self._writer.upsert_labels(labels)
        return write_result, credit_result, label_result

    @staticmethod
    def _write_errors(*results: WriteResult) -> list[BatchErrorRecord]:
        return [
            BatchErrorRecord(phase=BatchPhase.WRITING, message=message)
            for result in results
            for message in result.errors
        ]

    async def _samples(self, relationships: list[Relationship], size: int = SAMPLE_SIZE) -> list[RelationshipSample]:
        chosen = relationships[:size]
        ids = [i for rel in chosen for i in (rel.source_artist_id, rel.target_artist_id)]
        names = {pid: p.name for pid, p in (await self._artist_store.get_many(ids)).items()}
        return [
            RelationshipSample(
                source=names.get(rel.source_artist_id, rel.source_artist_id),
                target=names.get(rel.target_artist_id, rel.target_artist_id),
                type=rel.type.value,
                strength=rel.strength,
            )
            for rel in chosen
        ]

    # ------------------------------------------------------------------
    # Artist batches
    # ------------------------------------------------------------------

    async def run_artist_batch(
        self,
        request: ArtistBatchRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> ArtistBatchSummary:
        """Enrich one page of stored artist profiles, newest first."""
        self.validate_providers(request.providers)
        await self._restore_quota()

        state = BatchState(batch_id=str(uuid.uuid4()), request=request)
        log = self._logger.bind(batch_id=state.batch_id)
        log.info("artist_batch_started", limit=request.limit, offset=request.offset)

        profiles = await self._artist_store.list_profiles(request.limit, request.offset)
        state = state.model_copy(update={"items_total": len(profiles)})
        state = self._advance(state, BatchPhase.PROCESSING)

        cancelled = cancel_event is not None and cancel_event.is_set()
        totals = _EnrichmentTotals()
        if request.providers and profiles and not cancelled:
            totals = await self._enrich_profiles(profiles, request.providers)
        processed = 0 if cancelled else len(profiles)

        state = self._with_errors(
            state, [BatchErrorRecord(phase=BatchPhase.PROCESSING, message=m) for m in totals.errors]
        )
        state = self._advance(state, BatchPhase.WRITING)
        write_result, _, label_result = await self._write_all(totals.relationships, [], totals.labels)
        state = self._with_errors(state, self._write_errors(write_result, label_result))

        state = self._advance(state, BatchPhase.SUMMARIZING)
        state = await self._persist_quota(state)

        summary = ArtistBatchSummary(
            artists_processed=processed,
            artists_enriched=totals.enriched,
            relationships_discovered=len(totals.relationships),
            relationships_saved=write_result.written,
            labels_linked=label_result.written,
            quota_deferred=totals.deferred,
            cancelled=cancelled,
            next_offset=request.offset + processed,
            sample_relationships=await self._samples(write_result.relationships),
            errors=[e.render() for e in state.errors],
        )
        log.info(
            "artist_batch_complete",
            artists_processed=summary.artists_processed,
            relationships_saved=summary.relationships_saved,
            errors=len(summary.errors),
        )
        return summary

    # ------------------------------------------------------------------
    # Single artist
    # ------------------------------------------------------------------

    async def discover_artist(self, request: DiscoverArtistRequest) -> DiscoverArtistResult:
        """Resolve one named artist and run provider discovery for it.

        Raises
        ------
        InvalidNameError
            If the artist name is unusable.
        ConfigurationError
            If a requested provider is unknown or unconfigured.
        """
        self.validate_providers(request.providers)
        await self._restore_quota()

        profile = await self._resolver.resolve(request.artist_name, CreatedVia.MANUAL)
        options = NetworkOptions(
            max_items=self._network_options.max_items,
            include_producers=request.include_producers,
            include_labels=request.include_labels,
        )
        totals = await self._enrich_profiles([profile], request.providers, options=options)

        ranked = sorted(totals.relationships, key=lambda r: r.strength, reverse=True)
        kept = ranked[: request.max_relationships]
        write_result, _, label_result = await self._write_all(kept, [], totals.labels)

        if self._quota_store is not None:
            try:
                await self._quota_store.save_states(self._quota.snapshot())
            except StorageWriteError as exc:
                totals.errors.append(str(exc))

        refreshed = await self._artist_store.get_by_id(profile.id) or profile
        return DiscoverArtistResult(
            artist_id=refreshed.id,
            artist_name=refreshed.name,
            external_ids=dict(refreshed.external_ids),
            relationships_discovered=len(totals.relationships),
            relationships_saved=write_result.written,
            labels_linked=label_result.written,
            relationships=await self._samples(write_result.relationships, size=len(kept)),
            errors=[*totals.errors, *write_result.errors, *label_result.errors],
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self) -> dict[str, object]:
        """Counts of stored tracks, artists, relationships and credits plus quota usage."""
        all_sources = [TrackSource.LIVE, TrackSource.ARCHIVE]
        return {
            "tracks": {
                "live": await self._track_store.count([TrackSource.LIVE]),
                "archive": await self._track_store.count([TrackSource.ARCHIVE]),
                "total": await self._track_store.count(all_sources),
            },
            "artists": await self._artist_store.count(),
            "relationships": await self._relationship_store.count_relationships(),
            "credits": await self._relationship_store.count_credits(),
            "providers": {
                name: client.is_available() for name, client in sorted(self._providers.items())
            },
            "quota": [state.model_dump(mode="json") for state in self._quota.status()],
        }
