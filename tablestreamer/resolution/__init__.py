from tablestreamer.resolution.layer import PropertyLayer, merge

__all__ = ["PropertyLayer", "merge"]
