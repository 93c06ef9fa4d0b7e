"""
Manifest reconciliation for the image mirror.

Decides, per (source, destination, tag) job, what has to be copied and
rebuilds the destination manifest list one platform entry at a time:

    1. Normalize source and destination into fully qualified references
    2. Inspect and classify the source manifest
    3. Manifest lists: copy every child of the configured architectures by
       digest to "<tag>-<arch>[-<variant>]" and add the default entry of
       each architecture to the list at "<tag>"
    4. Single manifests: copy to "<tag>-<arch>" and create a single-entry
       list at "<tag>"
    5. Publish the repository description once the job succeeded

Every copy goes through copy_if_changed(), so re-running an unchanged job
only inspects manifests and never writes to the destination.
"""

import logging
from dataclasses import dataclass, field

from .config import config as default_config
from .description import DescriptionPublisher
from .errors import ConfigurationError, MirrorError, SourceNotFoundError, TransportError, UnsupportedSchemaError
from .manifest import (
    UPCONVERT_FLAGS,
    ManifestEnvelope,
    Strategy,
    architecture_from_config,
    classify,
    group_architectures,
    list_descriptors,
)
from .reference import normalize_destination, normalize_source
from .transport import APPEND, CREATE, RegistryTransport
from .validation import fingerprint, validate_digest, validate_tag

logger = logging.getLogger(__name__)

# copy_if_changed() outcomes
COPIED = "copied"
UNCHANGED = "unchanged"

# Per-architecture outcomes beyond COPIED/UNCHANGED
NOT_FOUND = "not-found"
SKIPPED = "skipped"
FAILED = "failed"

# ManifestListBuilder state before anything was published
INITIAL = "initial"


@dataclass
class ArchResult:
    """Outcome of mirroring one architecture (or one variant of it)."""

    architecture: str | None
    outcome: str
    dest_tag: str | None = None
    variant: str | None = None
    stage: str | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.outcome == FAILED


@dataclass
class JobResult:
    """Outcome of one mirror job, reported back to the caller instead of raised."""

    source: str
    dest: str
    tag: str
    ok: bool = True
    stage: str | None = None
    error: str | None = None
    architectures: list[ArchResult] = field(default_factory=list)

    @property
    def copied(self) -> int:
        return sum(1 for r in self.architectures if r.outcome == COPIED)

    def fail(self, stage: str, error) -> "JobResult":
        self.ok = False
        self.stage = stage
        self.error = str(error)
        return self

    def summary(self) -> str:
        status = "OK" if self.ok else f"FAILED at {self.stage}: {self.error}"
        return f"{self.source} => {self.dest}:{self.tag} [{status}] ({self.copied} copied)"


def copy_if_changed(transport, src: str, dest: str, arch: str, extra_flags=()) -> str:
    """
    Copy src to dest unless both manifests already have the same fingerprint.

    Args:
        transport: Registry transport
        src: Source reference (tag or digest)
        dest: Destination tag reference
        arch: Architecture override passed to the copy
        extra_flags: Additional copy flags (e.g. schema upconversion)

    Returns:
        UNCHANGED if nothing was written, COPIED otherwise

    Raises:
        SourceNotFoundError: if the source manifest does not exist
        TransportError: if the source cannot be inspected or the copy fails

    Note:
        Destination inspect failures are treated as a missing destination.
    """
    source_raw = transport.inspect_manifest(src)
    if not source_raw:
        raise SourceNotFoundError(f"Source manifest not found: {src}")

    try:
        dest_raw = transport.inspect_manifest(dest)
    except TransportError as e:
        logger.debug(f"Treating {dest} as missing: {e}")
        dest_raw = None

    source_digest = fingerprint(source_raw)
    dest_digest = fingerprint(dest_raw)

    if source_digest == dest_digest:
        logger.info(f"\tUnchanged: {src} == {dest}")
        logger.info(f"\t           {source_digest}")
        return UNCHANGED

    logger.info(f"\tCopying {src} => {dest}")
    logger.info(f"\t        {source_digest} => {dest_digest}")
    transport.copy_manifest(src, dest, arch, extra_flags)
    return COPIED


class ManifestListBuilder:
    """
    Incrementally rebuilds the manifest list at one destination tag.

    The first published entry replaces any existing list (CREATE); every
    later entry is appended (APPEND). Entries that are already current are
    only published once something else caused a rebuild, so an unchanged
    image never touches the list.
    """

    def __init__(self, transport, dest_ref: str):
        self.transport = transport
        self.dest_ref = dest_ref
        self.mode = INITIAL
        self.pending = []
        self.failures = {}

    def _publish(self, label: str, source) -> None:
        mode = CREATE if self.mode == INITIAL else APPEND
        logger.info(f"\tAdding {label} => {self.dest_ref}")
        self.transport.publish_manifest_list(self.dest_ref, source, mode)
        self.mode = mode

    def add(self, label: str, source) -> None:
        """
        Publish a freshly copied entry.

        Raises:
            TransportError: if publishing this entry fails
        """
        self._publish(label, source)
        self._flush()

    def keep(self, label: str, source) -> None:
        """Carry an unchanged entry into the list if, and once, the list is rebuilt."""
        if self.mode == INITIAL:
            self.pending.append((label, source))
            return
        self._publish(label, source)

    def _flush(self) -> None:
        pending, self.pending = self.pending, []
        for label, source in pending:
            try:
                self._publish(label, source)
            except TransportError as e:
                logger.error(f"\tFailed adding {label} => {self.dest_ref}: {e}")
                self.failures[label] = e


def _mirror_entry(transport, builder, entry, source, dest, tag) -> ArchResult:
    descriptor = entry.descriptor
    dest_tag = entry.dest_tag(tag)
    result = ArchResult(architecture=entry.architecture, outcome=FAILED, dest_tag=dest_tag, variant=entry.variant)

    if not entry.is_default and not entry.variant:
        logger.warning(f"\tSkipping duplicate {entry.architecture} entry {descriptor.digest} without variant")
        result.outcome = SKIPPED
        return result

    try:
        validate_digest(descriptor.digest)
    except ConfigurationError as e:
        result.stage, result.error = "copy", str(e)
        return result

    # Copy by digest: a tag would lose the platform/variant annotation,
    # which only exists in the source list.
    dest_ref = dest.with_tag(dest_tag)
    try:
        outcome = copy_if_changed(transport, source.with_digest(descriptor.digest), dest_ref, entry.architecture)
    except TransportError as e:
        logger.error(f"\tFailed copying {entry.architecture} to {dest_ref}: {e}")
        result.stage, result.error = "copy", str(e)
        return result
    result.outcome = outcome

    if not entry.is_default:
        return result

    try:
        if outcome == COPIED:
            builder.add(dest_ref, descriptor)
        else:
            builder.keep(dest_ref, descriptor)
    except TransportError as e:
        logger.error(f"\tFailed adding {dest_ref} => {builder.dest_ref}: {e}")
        result.outcome, result.stage, result.error = FAILED, "publish", str(e)
    return result


def reconcile_manifest_list(transport, envelope, source, dest, tag: str, arch_list) -> list[ArchResult]:
    """
    Mirror every configured architecture of a manifest list.

    Failures of one architecture are recorded in its ArchResult and do not
    stop the sweep; the destination list then holds the architectures that
    succeeded.

    Args:
        transport: Registry transport
        envelope: Source manifest list
        source: Source ImageReference
        dest: Destination ImageReference
        tag: Source tag, also the bare destination tag
        arch_list: Architectures to mirror, in sweep order

    Returns:
        One ArchResult per mirrored entry, plus one per missing architecture
    """
    builder = ManifestListBuilder(transport, dest.with_tag(tag))
    groups = group_architectures(list_descriptors(envelope), arch_list)
    results = []

    for arch, entries in groups.items():
        if not entries:
            logger.warning(f"\t{arch} NOT FOUND")
            results.append(ArchResult(architecture=arch, outcome=NOT_FOUND))
            continue
        for entry in entries:
            results.append(_mirror_entry(transport, builder, entry, source, dest, tag))

    for result in results:
        error = builder.failures.get(dest.with_tag(result.dest_tag)) if result.dest_tag else None
        if error is not None:
            result.outcome, result.stage, result.error = FAILED, "publish", str(error)

    return results


def resolve_single_architecture(transport, strategy, envelope, source_ref: str) -> str | None:
    """
    Find the declared architecture of a single-architecture image.

    Schema 2 manifests only carry it in the image config; schema 1
    manifests carry it in the manifest body.

    Raises:
        SourceNotFoundError: if the image config is missing
        TransportError: if the image config cannot be fetched
        UnsupportedSchemaError: if the image config is not JSON, or the
            architecture is not a string
    """
    if strategy is Strategy.MANIFEST_V1:
        arch = envelope.body.get("architecture")
        if arch is not None and not isinstance(arch, str):
            raise UnsupportedSchemaError(f"architecture must be a string, not {type(arch).__name__}")
        return arch

    raw_config = transport.inspect_config(source_ref)
    if not raw_config:
        raise SourceNotFoundError(f"Image config not found: {source_ref}")
    return architecture_from_config(raw_config)


def mirror_single_architecture(transport, strategy, arch, source, dest, tag: str, arch_list) -> list[ArchResult]:
    """
    Mirror a single-architecture image to "<tag>-<arch>" and list it at "<tag>".

    Architectures outside arch_list are skipped without error. Schema 1
    images are upconverted to schema 2 on copy.
    """
    if arch not in arch_list:
        logger.info(f"\tSkipping architecture {arch}: not in {' '.join(arch_list)}")
        return [ArchResult(architecture=arch, outcome=SKIPPED)]

    dest_tag = f"{tag}-{arch}"
    dest_ref = dest.with_tag(dest_tag)
    list_ref = dest.with_tag(tag)
    result = ArchResult(architecture=arch, outcome=FAILED, dest_tag=dest_tag)
    flags = UPCONVERT_FLAGS if strategy is Strategy.MANIFEST_V1 else ()

    try:
        result.outcome = copy_if_changed(transport, source.with_tag(tag), dest_ref, arch, flags)
    except TransportError as e:
        logger.error(f"\tFailed copying {arch} to {dest_ref}: {e}")
        result.stage, result.error = "copy", str(e)
        return [result]

    if result.outcome == COPIED:
        logger.info(f"\tAdding {dest_ref} => {list_ref}")
        try:
            transport.publish_manifest_list(list_ref, dest_ref, CREATE)
        except TransportError as e:
            logger.error(f"\tFailed adding {dest_ref} => {list_ref}: {e}")
            result.outcome, result.stage, result.error = FAILED, "publish", str(e)

    return [result]


def mirror_image(source_spec: str, dest_spec: str, tag: str, transport=None, publisher=None, cfg=None) -> JobResult:
    """
    Mirror one tag of a source image to a destination repository.

    Never raises for mirroring failures: they are logged with the failing
    stage (normalize, inspect, classify, copy, publish) and returned in the
    JobResult, so the caller can move on to the next job.

    Args:
        source_spec: Source image spec, e.g. "quay.io/coreos/etcd"
        dest_spec: Destination image spec, e.g. "rancher/mirrored-coreos-etcd"
        tag: Tag to mirror
        transport: Registry transport (default: RegistryTransport)
        publisher: Description publisher (default: DescriptionPublisher)
        cfg: Config (default: global config)

    Returns:
        JobResult with one ArchResult per architecture handled
    """
    cfg = cfg or default_config
    transport = transport or RegistryTransport(cfg)
    publisher = publisher or DescriptionPublisher(cfg)
    result = JobResult(source=source_spec, dest=dest_spec, tag=tag)

    stage = "normalize"
    try:
        validate_tag(tag)
        source = normalize_source(source_spec, cfg)
        dest = normalize_destination(dest_spec, cfg)
        result.source, result.dest = str(source), str(dest)
        source_ref = source.with_tag(tag)

        stage = "inspect"
        raw = transport.inspect_manifest(source_ref)
        if not raw:
            raise SourceNotFoundError(f"Source manifest not found: {source_ref}")

        stage = "classify"
        envelope = ManifestEnvelope.from_bytes(raw)
        strategy = classify(envelope)
        logger.info(f"{source_ref} is {strategy.value}")

        if strategy is Strategy.MANIFEST_LIST:
            stage = "copy"
            result.architectures = reconcile_manifest_list(transport, envelope, source, dest, tag, cfg.ARCH_LIST)
        else:
            stage = "inspect"
            arch = resolve_single_architecture(transport, strategy, envelope, source_ref)
            stage = "copy"
            result.architectures = mirror_single_architecture(transport, strategy, arch, source, dest, tag, cfg.ARCH_LIST)
    except MirrorError as e:
        logger.error(f"===\nFailed copying image for {result.dest} ({stage}): {e}\n===")
        return result.fail(stage, e)

    failed = [r for r in result.architectures if r.failed]
    if failed:
        first = failed[0]
        logger.error(f"===\nFailed copying image for {result.dest}: {len(failed)} entries failed\n===")
        return result.fail(first.stage, f"{first.dest_tag or first.architecture}: {first.error}")

    publisher.publish(source, dest)
    return result
