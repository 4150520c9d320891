#!/usr/bin/python

import argparse
import collections
import html
import io
import math
import os
import sys

import png

import curves
import heaplog
from heapmodel import BLOCK_SIZE, BLOCKS_PER_PAGE, PAGE_SIZE, HeapVizError
from splitter import ChunkSplitter


def parse_args():
    parser = argparse.ArgumentParser(
        description="Render a ptmalloc heap chunk log as html with one picture per page")
    parser.add_argument(
        "--scale",
        type=int,
        default=1,
        help="Pixels per block edge in page pictures (default: 1)",
    )
    parser.add_argument(
        "--curve",
        choices=sorted(curves.curves),
        default='linear',
        help="Order in which blocks are placed in a page picture (default: linear)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        help="increase debug output verbosity (-v, -vv, -vvv, etc)",
    )
    parser.add_argument(
        "logfile",
        help="Heap chunk log written by the heap dumper",
    )
    parser.add_argument(
        "output",
        help="Output directory, created when missing",
    )
    return parser.parse_args()


NUM_BLOCKS_1D = int(math.sqrt(BLOCKS_PER_PAGE))
CURVE_ORDER = NUM_BLOCKS_1D.bit_length() - 1

PAGE_BG_COLOR = (0x77, 0x77, 0x77)
CLEAN_PAGE_COLOR = (0xff, 0xff, 0xff)
USED_BLOCK_COLORS = [
    (0xff, 0, 0),
    (0xf0, 0, 0),
    (0xe1, 0, 0),
    (0xd2, 0, 0),
]
FREE_BLOCK_COLORS = [
    (0xce, 0xce, 0xce),
    (0xbf, 0xbf, 0xbf),
    (0xb0, 0xb0, 0xb0),
    (0xa1, 0xa1, 0xa1),
]
CLEAN_PAGE_IMAGE_BASE_NAME = 'page-clean.png'

STYLESHEET = """
body {
  font-family: sans-serif;
}

heap {
  display: block;
  border: solid 1px black;
  margin-bottom: 2rem;
}

page-title {
  display: none;
}

heap-title,
heap-content {
  display: block;
}

heap-title {
  padding: 1rem;
}

heap-title h2 {
  margin: 0;
}

heap-title .stats td,
heap-title .stats th {
  text-align: right;
  padding-right: 1em;
}

page {
  display: inline-block;
  vertical-align: top;
  border: solid 1px #777;
}
"""

HeapStats = collections.namedtuple('HeapStats', [
    'virtual_mb', 'pages',
    'dirty_mb', 'dirty_pages', 'dirty_pct',
    'clean_mb', 'clean_pages', 'clean_pct',
])


def _mb(num_bytes):
    return num_bytes / 1024 / 1024


def _pct(count, total):
    if total == 0:
        return 0
    return count * 100 // total


def heap_stats(heap):
    total = len(heap.pages)
    dirty = len(heap.maybe_dirty_pages())
    clean = len(heap.clean_pages())
    return HeapStats(
        _mb(heap.size), total,
        _mb(dirty * PAGE_SIZE), dirty, _pct(dirty, total),
        _mb(clean * PAGE_SIZE), clean, _pct(clean, total),
    )


def color_for_block(block):
    if block.used:
        colors = USED_BLOCK_COLORS
    else:
        colors = FREE_BLOCK_COLORS
    return colors[block.chunk.number % len(colors)]


class PageImage(object):
    """Square picture of one page, one cell per block."""

    def __init__(self, color=PAGE_BG_COLOR, scale=1):
        if scale < 1:
            raise HeapVizError("scale has to be at least 1, not {}".format(scale))
        self.scale = scale
        self.width = self.height = NUM_BLOCKS_1D
        self._grid = [[color for x in range(self.width)] for y in range(self.height)]

    @classmethod
    def for_page(cls, page, cells, scale=1):
        image = cls(PAGE_BG_COLOR, scale)
        for block in page.blocks:
            y, x = cells[block.offset // BLOCK_SIZE]
            image[y, x] = color_for_block(block)
        return image

    def __getitem__(self, pos):
        y, x = pos
        return self._grid[y][x]

    def __setitem__(self, pos, color):
        y, x = pos
        self._grid[y][x] = color

    def rows(self):
        scale = self.scale
        return [[channel for color in row for _ in range(scale) for channel in color]
                for row in self._grid for _ in range(scale)]

    def write_png(self, pngfile):
        png.from_array(self.rows(), 'RGB').save(pngfile)


class HtmlVisualizer(object):
    def __init__(self, heaps, directory, scale=1, curve='linear', verbose=0):
        self.heaps = heaps
        self.directory = directory
        self.scale = scale
        self.cells = curves.positions(curve, CURVE_ORDER)
        self.verbose = verbose
        self._out = None

    def perform(self):
        if not os.path.isdir(self.directory):
            os.makedirs(self.directory)
        self._write_stylesheet()
        PageImage(CLEAN_PAGE_COLOR, self.scale).write_png(
            os.path.join(self.directory, CLEAN_PAGE_IMAGE_BASE_NAME))
        with io.open(os.path.join(self.directory, 'index.html'), 'w', encoding='utf-8') as out:
            self._out = out
            self._start_of_document()
            for i, heap in enumerate(self.heaps):
                print("Writing heap {0:#x} [{1}/{2}]".format(heap.addr, i + 1, len(self.heaps)))
                self._heap(heap)
            self._end_of_document()
            self._out = None
        return self

    def _write(self, text):
        self._out.write(text)

    def _write_stylesheet(self):
        with io.open(os.path.join(self.directory, 'stylesheet.css'), 'w', encoding='utf-8') as f:
            f.write(STYLESHEET)

    def _start_of_document(self):
        self._write("<html>\n")
        self._write("<head>\n")
        self._write("\t<title>Heap visualizer</title>\n")
        self._write("\t<link rel=\"stylesheet\" href=\"stylesheet.css\">\n")
        self._write("</head>\n")
        self._write("<body>\n")

    def _end_of_document(self):
        self._write("</body>\n")
        self._write("</html>\n")

    def _heap(self, heap):
        stats = heap_stats(heap)
        if self.verbose >= 1:
            print("    {0} dirty {1} clean {2}".format(heap, stats.dirty_pages, stats.clean_pages))
        self._write("<heap>\n")
        self._write(
            "<heap-title>\n"
            "  <h2>Heap {0} &mdash; 0x{1:08x}</h2>\n"
            "  <table class=\"stats\">\n"
            "    <tr><th>Virtual</th><td>{s.virtual_mb:.1f} MB</td>"
            "<td>{s.pages} pages</td></tr>\n"
            "    <tr><th>Dirty</th><td>{s.dirty_mb:.1f} MB</td>"
            "<td>{s.dirty_pages} pages</td><td>{s.dirty_pct}%</td></tr>\n"
            "    <tr><th>Clean</th><td>{s.clean_mb:.1f} MB</td>"
            "<td>{s.clean_pages} pages</td><td>{s.clean_pct}%</td></tr>\n"
            "  </table>\n"
            "</heap-title>\n".format(heap.number, heap.addr, s=stats))
        self._write("\t<heap-content>")
        for page in heap.pages:
            self._page(page)
        self._write("</heap-content>\n")
        self._write("</heap>\n")

    def _page(self, page):
        self._write("<page>")
        self._write("<page-title>{0:08x}-{1:08x}</page-title>".format(page.addr, page.end_addr))
        title = html.escape("{:#x}".format(page.addr))
        if page.maybe_dirty:
            basename = "page-{:x}.png".format(page.addr)
            PageImage.for_page(page, self.cells, self.scale).write_png(
                os.path.join(self.directory, basename))
            if self.verbose >= 2:
                print("    {0} -> {1}".format(page, basename))
        else:
            basename = CLEAN_PAGE_IMAGE_BASE_NAME
        self._write("<img src=\"{0}\" class=\"page-content\" title=\"{1}\">".format(
            html.escape(basename), title))
        self._write("</page>")


def main():
    args = parse_args()
    verbose = args.verbose if args.verbose is not None else 0
    if args.scale < 1:
        raise HeapVizError("--scale has to be at least 1, not {}".format(args.scale))

    print("Parsing file")
    try:
        heaps = heaplog.parse_file(args.logfile, verbose)
    except (IOError, OSError) as e:
        raise HeapVizError("cannot read {0}: {1}".format(args.logfile, e))
    print("Splitting heap chunks")
    heaps = ChunkSplitter(heaps, verbose).perform()
    print("Writing output")
    HtmlVisualizer(heaps, args.output, args.scale, args.curve, verbose).perform()


if __name__ == '__main__':
    try:
        main()
    except HeapVizError as e:
        print("Error: {0}".format(e), file=sys.stderr)
        sys.exit(1)
