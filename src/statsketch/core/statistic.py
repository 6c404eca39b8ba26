"""Composite statistic: exact accumulators beside a mergeable quantile sketch.

The sketch is only ever trusted for quantiles. count, sum, min and max are
tracked as plain accumulators, persisted in their own bucket columns and
restored from those columns whenever a sketch is loaded, so they stay exact
no matter how many buckets are merged.
"""

import logging
import math
from dataclasses import dataclass

from ddsketch import DDSketch
from ddsketch.ddsketch import BaseDDSketch
from ddsketch.mapping import LogarithmicMapping
from ddsketch.pb.ddsketch_pb2 import DDSketch as DDSketchMessage
from ddsketch.pb.ddsketch_pb2 import IndexMapping
from ddsketch.pb.proto import DDSketchProto, StoreProto
from google.protobuf.message import DecodeError

from statsketch.core.exceptions import SketchDecodeError
from statsketch.core.models import Bucket, Summary

logger = logging.getLogger(__name__)

QUANTILES = (0.5, 0.9, 0.95, 0.99)


def new_sketch(relative_accuracy: float) -> BaseDDSketch:
    """Create an empty sketch with the given relative accuracy."""
    return DDSketch(relative_accuracy=relative_accuracy)


def encode_sketch(sketch: BaseDDSketch) -> bytes:
    """Serialize a sketch to its protobuf wire form."""
    return DDSketchProto.to_proto(sketch).SerializeToString()


def _parse(data: bytes, relative_accuracy: float) -> BaseDDSketch:
    message = DDSketchMessage()
    message.ParseFromString(bytes(data))
    if message.mapping.interpolation != IndexMapping.NONE:
        raise ValueError(
            f"unsupported index mapping interpolation {message.mapping.interpolation}"
        )
    # Rebuilding the mapping from gamma would round-trip it through a
    # relative accuracy and shift gamma by an ulp.
    mapping = LogarithmicMapping(relative_accuracy, offset=message.mapping.indexOffset)
    if mapping.gamma != message.mapping.gamma:
        raise ValueError(
            f"sketch gamma {message.mapping.gamma!r} does not match "
            f"relative accuracy {relative_accuracy} (gamma {mapping.gamma!r})"
        )
    return BaseDDSketch(
        mapping=mapping,
        store=StoreProto.from_proto(message.positiveValues),
        negative_store=StoreProto.from_proto(message.negativeValues),
        zero_count=message.zeroCount,
    )


def decode_sketch(
    data: bytes | None,
    relative_accuracy: float,
    bucket: tuple[object, ...] | None = None,
) -> BaseDDSketch:
    """Deserialize a sketch previously produced by encode_sketch.

    The decoded sketch uses exactly the mapping of ``new_sketch(relative_accuracy)``,
    so its quantiles match the encoded sketch bit for bit and it merges with
    freshly created sketches.

    Args:
        data: Serialized sketch bytes.
        relative_accuracy: Relative accuracy the sketch was created with.
        bucket: Identity of the bucket the bytes came from, for error reports.

    Raises:
        SketchDecodeError: If the bytes are missing, not a valid sketch, or
            were written with a different relative accuracy.
    """
    if not data:
        logger.error("Missing sketch bytes for bucket %s", bucket)
        raise SketchDecodeError("sketch bytes are empty", bucket)
    try:
        return _parse(data, relative_accuracy)
    except (DecodeError, ValueError) as exc:
        logger.error("Undecodable sketch for bucket %s: %s", bucket, exc)
        raise SketchDecodeError(f"invalid sketch bytes: {exc}", bucket) from exc


@dataclass
class CompositeStatistic:
    """Exact count/sum/min/max plus an approximate quantile sketch."""

    sketch: BaseDDSketch
    count: int = 0
    sum: float = 0.0
    min: float = math.inf
    max: float = -math.inf

    @classmethod
    def empty(cls, relative_accuracy: float) -> "CompositeStatistic":
        return cls(sketch=new_sketch(relative_accuracy))

    @classmethod
    def from_bucket(
        cls, bucket: Bucket, relative_accuracy: float
    ) -> "CompositeStatistic":
        """Rebuild the statistic of a stored bucket.

        The sketch is decoded from the bucket's bytes; the exact values come
        from the bucket's own columns, never from the sketch.
        """
        identity = (bucket.name, bucket.key, bucket.duration, bucket.start)
        return cls(
            sketch=decode_sketch(bucket.sketch, relative_accuracy, identity),
            count=int(bucket.count),
            sum=bucket.sum,
            min=bucket.min,
            max=bucket.max,
        )

    def add(self, value: float) -> None:
        """Fold a single observation in."""
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)
        self.sketch.add(value)

    def merge(self, other: "CompositeStatistic") -> None:
        """Merge another statistic into this one. ``other`` is not modified."""
        self.count += other.count
        self.sum += other.sum
        self.min = min(self.min, other.min)
        self.max = max(self.max, other.max)
        self.sketch.merge(other.sketch)

    def quantile(self, q: float) -> float:
        """Approximate value at quantile q, or 0.0 for an empty statistic."""
        value = self.sketch.get_quantile_value(q)
        return 0.0 if value is None else float(value)

    def quantiles(self) -> tuple[float, float, float, float]:
        p50, p90, p95, p99 = (self.quantile(q) for q in QUANTILES)
        return p50, p90, p95, p99

    def summary(self) -> Summary:
        p50, p90, p95, p99 = self.quantiles()
        return Summary(
            count=self.count,
            sum=self.sum,
            min=self.min,
            max=self.max,
            p50=p50,
            p90=p90,
            p95=p95,
            p99=p99,
        )

    def to_bucket(
        self, name: str, key: str, duration: float, start: float, end: float
    ) -> Bucket:
        """Snapshot this statistic as the stored row of one bucket."""
        p50, p90, p95, p99 = self.quantiles()
        return Bucket(
            name=name,
            key=key,
            duration=duration,
            start=start,
            end=end,
            count=self.count,
            sum=self.sum,
            min=self.min,
            max=self.max,
            p50=p50,
            p90=p90,
            p95=p95,
            p99=p99,
            sketch=encode_sketch(self.sketch),
        )
