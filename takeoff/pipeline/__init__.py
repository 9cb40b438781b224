"""Import pipeline: resolution, dedup, aggregation and batched loading."""
