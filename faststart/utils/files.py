#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################
from pathlib import Path

def output_filename(source: Path) -> Path:
    """
    The name of the converted file, in the same directory as the source.
    "clip.mp4" becomes "clip.out.mp4" and "clip" becomes "clip.out"
    """
    return source.with_name(f'{source.stem}.out{source.suffix}')
