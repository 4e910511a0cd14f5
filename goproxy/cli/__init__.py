"""
goproxy CLI.

Usage:
    goproxy serve
    goproxy list <module>
    goproxy latest <module>
    goproxy info <module> <version>
    goproxy verify <module> <version>
    goproxy sweep <module>
"""

__cli_name__ = "goproxy"
