#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################
import sys

from faststart.convert import FastStartConverter

if __name__ == "__main__":
    sys.exit(FastStartConverter.main(sys.argv[1:]))
