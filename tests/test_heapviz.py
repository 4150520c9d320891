import sys

import png
import pytest

import heaplog
import heapviz
from heapmodel import HeapVizError
from splitter import ChunkSplitter

LOG = """\
Heap  0x1000 size       12288 bytes:
Pages in use for 0x1000-0x4000: 10?
chunk 0x1000 size         32 bytes          hello
chunk 0x1020 size       4064 bytes [free]
chunk 0x2000 size       4096 bytes          world
chunk 0x3000 size       4096 bytes (top)
Heap  0x10000 size       4096 bytes:
chunk 0x10000 size       4096 bytes (top)
"""


def layout(text=LOG):
    return ChunkSplitter(heaplog.parse_lines(text.splitlines())).perform()


def read_png(path):
    width, height, rows, info = png.Reader(filename=str(path)).asRGB8()
    rows = [list(row) for row in rows]
    return width, height, [[tuple(row[i:i + 3]) for i in range(0, len(row), 3)] for row in rows]


def test_heap_stats():
    heap = layout()[0]
    stats = heapviz.heap_stats(heap)
    assert stats.pages == 3
    assert stats.dirty_pages == 2
    assert stats.clean_pages == 1
    # truncating division: 2 * 100 / 3 and 1 * 100 / 3
    assert stats.dirty_pct == 66
    assert stats.clean_pct == 33
    assert stats.virtual_mb == pytest.approx(12288 / 1024 / 1024)
    assert stats.dirty_mb == pytest.approx(2 * 4096 / 1024 / 1024)


def test_heap_stats_without_pages():
    heap = heaplog.parse_lines(["Heap 1000 size 0"])[0]
    stats = heapviz.heap_stats(heap)
    assert stats.pages == 0
    assert stats.dirty_pct == 0
    assert stats.clean_pct == 0


def test_color_for_block():
    heap = layout()[0]
    blocks = heap.pages[0].blocks
    assert heapviz.color_for_block(blocks[0]) == heapviz.USED_BLOCK_COLORS[0]
    assert heapviz.color_for_block(blocks[2]) == heapviz.FREE_BLOCK_COLORS[1]
    top = heap.pages[2].blocks[0]
    assert heapviz.color_for_block(top) == heapviz.FREE_BLOCK_COLORS[3]


def test_page_image_linear():
    heap = layout()[0]
    cells = heapviz.curves.positions('linear', heapviz.CURVE_ORDER)
    image = heapviz.PageImage.for_page(heap.pages[0], cells)
    assert image.width == image.height == 16
    assert image[0, 0] == heapviz.USED_BLOCK_COLORS[0]
    assert image[0, 1] == heapviz.USED_BLOCK_COLORS[0]
    assert image[0, 2] == heapviz.FREE_BLOCK_COLORS[1]
    assert image[15, 15] == heapviz.FREE_BLOCK_COLORS[1]


def test_page_image_offset_placement():
    heap = layout("Heap 1000 size 4096\nchunk 1800 size 32 bytes  x\n")[0]
    cells = heapviz.curves.positions('linear', heapviz.CURVE_ORDER)
    image = heapviz.PageImage.for_page(heap.pages[0], cells)
    assert image[0, 0] == heapviz.PAGE_BG_COLOR
    assert image[8, 0] == heapviz.USED_BLOCK_COLORS[0]
    assert image[8, 1] == heapviz.USED_BLOCK_COLORS[0]
    assert image[8, 2] == heapviz.PAGE_BG_COLOR


def test_page_image_scale(tmp_path):
    image = heapviz.PageImage(heapviz.CLEAN_PAGE_COLOR, scale=3)
    path = tmp_path / 'clean.png'
    image.write_png(str(path))
    width, height, pixels = read_png(path)
    assert (width, height) == (48, 48)
    assert all(pixel == heapviz.CLEAN_PAGE_COLOR for row in pixels for pixel in row)


def test_page_image_bad_scale():
    with pytest.raises(HeapVizError):
        heapviz.PageImage(scale=0)


def test_html_visualizer(tmp_path):
    out = tmp_path / 'out'
    heapviz.HtmlVisualizer(layout(), str(out), scale=2, curve='hilbert').perform()
    assert (out / 'stylesheet.css').exists()
    assert (out / 'page-clean.png').exists()
    assert (out / 'page-1000.png').exists()
    assert (out / 'page-3000.png').exists()
    assert (out / 'page-10000.png').exists()
    # clean page shares the placeholder picture
    assert not (out / 'page-2000.png').exists()

    index = (out / 'index.html').read_text(encoding='utf-8')
    assert index.count('<heap>') == 2
    assert index.count('<page>') == 4
    assert 'Heap 0 &mdash; 0x00001000' in index
    assert '<td>66%</td>' in index
    assert 'src="page-clean.png" class="page-content" title="0x2000"' in index

    width, height, pixels = read_png(out / 'page-1000.png')
    assert (width, height) == (32, 32)
    # order 4 hilbert curve starts top left heading right
    assert pixels[0][0] == heapviz.USED_BLOCK_COLORS[0]
    assert pixels[1][3] == heapviz.USED_BLOCK_COLORS[0]
    assert pixels[2][0] == heapviz.FREE_BLOCK_COLORS[1]


def test_main(tmp_path, monkeypatch, capsys):
    log = tmp_path / 'heaps_chunk.log'
    log.write_text(LOG, encoding='utf-8')
    out = tmp_path / 'html'
    monkeypatch.setattr(sys, 'argv', ['heapviz', '-v', str(log), str(out)])
    heapviz.main()
    assert (out / 'index.html').exists()
    stdout = capsys.readouterr().out
    assert 'Parsing file' in stdout
    assert 'Writing heap 0x10000 [2/2]' in stdout


def test_main_missing_log(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, 'argv', ['heapviz', str(tmp_path / 'nope.log'), str(tmp_path)])
    with pytest.raises(HeapVizError):
        heapviz.main()


def test_main_bad_scale(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, 'argv', ['heapviz', '--scale', '0', 'a.log', str(tmp_path)])
    with pytest.raises(HeapVizError):
        heapviz.main()
