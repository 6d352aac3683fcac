#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################
from .convert_options import ConvertOptions
from .converter import ConversionError, ConversionResult, ErrorCode, FastStartConverter

__all__ = ["ConversionError", "ConversionResult", "ConvertOptions", "ErrorCode",
           "FastStartConverter"]
