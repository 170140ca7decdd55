from .codec import ImageCodec, LABEL_PALETTE
from .label_map import LabelMaps, load_label_map, grey_to_id_table, left_right_flip_table
from .metadata import CameraInfo, load_camera_meta, parse_metadata, read_raw, write_transformed
from .writer import DepthFormat, OutputWriter

__all__ = [
    "codec",
    "label_map",
    "metadata",
    "writer",
]
