"""
Tests for the command line entry point
"""

import pytest

from passportify.imaging import decode_image, encode_image
from passportify.main import build_parser, main, parse_background


class TestArguments:
    """Argument parsing"""

    def test_background_presets(self):
        args = build_parser().parse_args(['in.jpg', '--background', 'blue'])
        spec = parse_background(args)
        assert spec.kind == 'color'
        assert spec.color == '#0284c7'

    def test_background_none(self):
        args = build_parser().parse_args(['in.jpg'])
        assert parse_background(args).kind == 'none'

    def test_background_image(self, tmp_path, portrait):
        path = tmp_path / "bg.png"
        path.write_bytes(encode_image(portrait, 'png'))
        args = build_parser().parse_args(['in.jpg', '--background', str(path), '--bg-scale', '0.5'])
        spec = parse_background(args)
        assert spec.kind == 'image'
        assert spec.scale == 0.5


class TestMain:
    """Full runs with the classical strategy"""

    def test_format_run(self, tmp_path, portrait):
        source = tmp_path / "photo.png"
        source.write_bytes(encode_image(portrait, 'png'))
        output = tmp_path / "out" / "photo.png"

        code = main([str(source), '-o', str(output), '--format', '35x45',
                     '--background', 'white', '--strategy', 'opencv'])
        assert code == 0
        assert decode_image(output.read_bytes()).shape == (531, 413, 3)

    def test_custom_size_jpeg(self, tmp_path, portrait):
        source = tmp_path / "photo.png"
        source.write_bytes(encode_image(portrait, 'png'))
        output = tmp_path / "photo.jpg"

        code = main([str(source), '-o', str(output), '--size', '2x2', '--unit', 'inch',
                     '--dpi', '100', '--strategy', 'opencv'])
        assert code == 0
        assert decode_image(output.read_bytes()).shape == (200, 200, 3)

    def test_missing_input(self, tmp_path):
        assert main([str(tmp_path / "nope.png"), '--strategy', 'opencv']) == 1

    def test_bad_size(self, tmp_path):
        assert main([str(tmp_path / "nope.png"), '--size', 'big']) == 2
