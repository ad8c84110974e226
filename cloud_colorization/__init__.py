"""Cloud colorization bounded context (layered package).

Transfers colors from one or more colored point clouds onto an uncolored,
co-registered cloud by nearest-neighbour lookup.

``__init__`` stays side-effect free. Use explicit imports for entrypoints:
`from cloud_colorization.entrypoints.colorize_clouds import colorize_clouds`
"""

__all__: list[str] = []
