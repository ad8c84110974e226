"""Entrypoint: colorize_clouds function for orchestrators/CLIs."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from cloud_colorization.application.use_case import ColorizeCloudsUseCase
from cloud_colorization.domain.model import DEFAULT_GROWTH_CHUNK, ColorizationSettings, RunReport
from cloud_colorization.infrastructure import (
    FilesystemCloudSource,
    FilesystemResultSink,
    spatial_index_factory,
)


def colorize_clouds(
    *,
    target_path: Path,
    colored_paths: Sequence[Path],
    output_path: Path,
    settings: Optional[ColorizationSettings] = None,
    index_backend: str = "kdtree",
    leaf_size: int = 16,
    growth_chunk: int = DEFAULT_GROWTH_CHUNK,
    float_format: str = "compact",
    export_cloud: Optional[Path] = None,
) -> RunReport:
    """Entrypoint to colorize a target cloud from colored clouds.

    This is the composition root for the cloud-colorization context.
    It wires up all dependencies and runs the use case.

    Args:
        target_path: Uncolored cloud to colorize.
        colored_paths: One or more colored clouds (concatenated in order).
        output_path: Destination of the ``x y z sqdist flag r g b`` records.
        settings: Threshold, default color and worker count; defaults to an
            unbounded threshold, black and a single worker.
        index_backend: ``kdtree`` (default), ``brute`` or ``flann``.
        leaf_size: Bucket size of the k-d tree.
        growth_chunk: Buffer growth increment used while loading.
        float_format: ``compact`` or ``fixed`` output number layout.
        export_cloud: Optional PLY/PCD path for the colorized geometry.

    Returns:
        RunReport with counts and stage timings.
    """
    if not colored_paths:
        raise ValueError("at least one colored cloud is required")

    # Infrastructure: cloud source and result sink
    cloud_source = FilesystemCloudSource(growth_chunk=growth_chunk)
    result_sink = FilesystemResultSink(
        float_format=float_format,
        export_cloud=Path(export_cloud) if export_cloud is not None else None,
    )

    # Infrastructure: spatial index backend
    index_factory = spatial_index_factory(index_backend, leaf_size=leaf_size)

    # Application: use case
    use_case = ColorizeCloudsUseCase(
        cloud_source=cloud_source,
        result_sink=result_sink,
        index_factory=index_factory,
        settings=settings or ColorizationSettings(),
    )

    report = use_case.run(
        target_path=Path(target_path),
        colored_paths=[Path(p) for p in colored_paths],
        output_path=Path(output_path),
    )
    return replace(report, sources=tuple(cloud_source.stats))
