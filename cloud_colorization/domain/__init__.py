"""Domain layer: point cloud model and colorization service."""
