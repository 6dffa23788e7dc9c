import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from streamgate.access import AccessResolver
from streamgate.const import MANIFEST_EXTENSIONS, SEGMENT_EXTENSIONS
from streamgate.schemas import AccessDescriptor, AccessMode
from streamgate.utils.http_utils import encode_gateway_url, is_absolute_url

logger = logging.getLogger(__name__)

# Query parameters owned by the rewriter; everything else the caller sent is carried over.
REWRITER_PARAMS = ("variant", "mode")


class LineKind(str, Enum):
    BLANK = "blank"
    DIRECTIVE = "directive"
    ABSOLUTE = "absolute"
    MANIFEST = "manifest"
    SEGMENT = "segment"
    OTHER = "other"


def reference_path(line: str) -> str:
    """The path part of a reference line, without query string or fragment."""
    return line.strip().split("?", 1)[0].split("#", 1)[0]


def reference_query(line: str) -> str:
    """The query string of a reference line, without the leading "?" or any fragment."""
    return line.strip().split("#", 1)[0].partition("?")[2]


def classify_line(line: str) -> LineKind:
    stripped = line.strip()
    if not stripped:
        return LineKind.BLANK
    if stripped.startswith("#"):
        return LineKind.DIRECTIVE
    if is_absolute_url(stripped):
        return LineKind.ABSOLUTE
    path = reference_path(stripped).lower()
    if path.endswith(MANIFEST_EXTENSIONS):
        return LineKind.MANIFEST
    if path.endswith(SEGMENT_EXTENSIONS):
        return LineKind.SEGMENT
    return LineKind.OTHER


def relative_to_prefix(base_dir: str, reference: str) -> Optional[str]:
    """
    Resolve a manifest reference against the directory of its manifest.

    Returns the path relative to the content prefix, or None if it would leave the prefix.
    """
    if reference.startswith("/"):
        return None
    joined = posixpath.normpath(posixpath.join(base_dir, reference))
    if joined == "." or joined == ".." or joined.startswith("../"):
        return None
    return joined


@dataclass
class RewriteContext:
    prefix: str  # Content prefix, always ending with "/".
    manifest_key: str  # Full object key of the manifest being rewritten.
    mode: Optional[AccessMode]  # Mode requested by the caller.
    manifest_url: str  # Absolute URL of the gateway manifest route for this content.
    query_params: Dict[str, str] = field(default_factory=dict)  # The caller's query parameters.

    @property
    def content_path(self) -> str:
        return self.prefix.rstrip("/")

    @property
    def base_dir(self) -> str:
        relative = self.manifest_key[len(self.prefix):] if self.manifest_key.startswith(self.prefix) else ""
        return posixpath.dirname(relative)


@dataclass
class RewrittenManifest:
    content: str
    mode: AccessMode


class M3U8Processor:
    def __init__(self, resolver: AccessResolver, segment_ttl: int = 3600, max_concurrency: int = 32):
        """
        Initializes the M3U8Processor.

        Args:
            resolver (AccessResolver): Resolver for segment URLs of the content's storage backend.
            segment_ttl (int): Lifetime in seconds of signed segment URLs.
            max_concurrency (int): Maximum number of segment resolutions in flight at once.
        """
        self.resolver = resolver
        self.segment_ttl = segment_ttl
        self.max_concurrency = max(1, max_concurrency)

    async def process_m3u8(self, content: str, context: RewriteContext) -> RewrittenManifest:
        """
        Rewrites every reference of an HLS manifest into a URL the client can fetch.

        Directive and blank lines, absolute URLs and unknown lines pass through unchanged.
        Nested manifests point back at the gateway with the effective mode, and segments
        are resolved through the access resolver. All references of one manifest are
        resolved with a single mode.

        Args:
            content (str): The manifest text.
            context (RewriteContext): Prefix, mode and routing information for this request.

        Returns:
            RewrittenManifest: The rewritten text and the mode it was rewritten with.
        """
        lines = content.splitlines()
        kinds = [classify_line(line) for line in lines]

        segment_keys: Dict[int, str] = {}
        variant_paths: Dict[int, str] = {}
        for index, (line, kind) in enumerate(zip(lines, kinds)):
            if kind not in (LineKind.SEGMENT, LineKind.MANIFEST):
                continue
            relative = relative_to_prefix(context.base_dir, reference_path(line))
            if relative is None:
                logger.warning(f"Reference {line.strip()!r} points outside {context.prefix}, leaving it unchanged")
                continue
            if kind is LineKind.SEGMENT:
                segment_keys[index] = context.prefix + relative
            else:
                variant_paths[index] = relative

        mode = await self.resolver.settle(context.mode, probe_key=context.content_path)
        descriptors = await self.resolve_segments(segment_keys, mode)

        fallen_back = [index for index, descriptor in descriptors.items() if descriptor.mode is not mode]
        if fallen_back:
            mode = self.resolver.fallback_for(mode)
            logger.warning(f"{len(fallen_back)} segment(s) could not use the requested mode, switching to {mode.value}")
            stale = {index: key for index, key in segment_keys.items() if descriptors[index].mode is not mode}
            descriptors.update(await self.resolve_segments(stale, mode))

        processed_lines: List[str] = []
        for index, line in enumerate(lines):
            if index in descriptors:
                processed_lines.append(self.segment_url(descriptors[index], line))
            elif index in variant_paths:
                processed_lines.append(self.variant_url(variant_paths[index], mode, context))
            else:
                processed_lines.append(line)

        rewritten = "\n".join(processed_lines)
        if content.endswith(("\n", "\r")):
            rewritten += "\n"
        return RewrittenManifest(rewritten, mode)

    async def resolve_segments(self, segment_keys: Dict[int, str], mode: AccessMode) -> Dict[int, AccessDescriptor]:
        """
        Resolves segment keys concurrently, keyed by their line index.

        Args:
            segment_keys (Dict[int, str]): Object keys by line index.
            mode (AccessMode): Mode to resolve with; unavailable segments fall back per resolver.

        Returns:
            Dict[int, AccessDescriptor]: Descriptors by line index.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _resolve(key: str) -> AccessDescriptor:
            async with semaphore:
                return await self.resolver.resolve(key, mode, ttl=self.segment_ttl)

        indexes = list(segment_keys)
        results = await asyncio.gather(*(_resolve(segment_keys[index]) for index in indexes))
        return dict(zip(indexes, results))

    @staticmethod
    def segment_url(descriptor: AccessDescriptor, line: str) -> str:
        """
        The resolved URL of a segment line.

        Passthrough URLs keep the encoder's query string (byte ranges, versions). Signed and
        token URLs carry their own query and are used as resolved.
        """
        query = reference_query(line)
        if query and descriptor.mode.is_passthrough:
            return f"{descriptor.url}?{query}"
        return descriptor.url

    @staticmethod
    def variant_url(variant: str, mode: AccessMode, context: RewriteContext) -> str:
        """
        Builds the gateway URL of a nested manifest.

        Args:
            variant (str): Path of the nested manifest relative to the content prefix.
            mode (AccessMode): The effective mode, propagated to the nested request.
            context (RewriteContext): The current request's context.

        Returns:
            str: The self-referential gateway URL.
        """
        query_params = {k: v for k, v in context.query_params.items() if k not in REWRITER_PARAMS}
        query_params["variant"] = variant
        query_params["mode"] = mode.value
        return encode_gateway_url(context.manifest_url, query_params=query_params)
