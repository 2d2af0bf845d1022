from __future__ import annotations

import json

from ltftp.cli import build_parser, main


def test_serve_arguments():
    args = build_parser().parse_args(
        ["serve", "--root", "/srv/tftp", "--port", "6969", "--read-only", "--ack-timeout-ms", "3000", "--retransmit-ms", "500"]
    )
    assert args.root == "/srv/tftp"
    assert args.port == 6969
    assert args.read_only
    assert args.ack_timeout_ms == 3000
    assert args.retransmit_ms == 500
    assert not args.silent_errors


def test_bench_reports_json(capsys):
    assert main(["--log-level", "WARNING", "bench", "--size-bytes", "3000", "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["role"] == "bench"
    assert out["bytes_transferred"] == 3000
    assert out["blocks"] == 6


def test_get_and_put_roundtrip(tmp_path, make_server):
    (tmp_path / "remote.txt").write_bytes(b"hello over tftp")
    _, (host, port) = make_server()

    local = tmp_path / "local.txt"
    rc = main(["get", "--host", host, "--port", str(port), "--out", str(local), "--retransmit-ms", "300", "remote.txt"])
    assert rc == 0
    assert local.read_bytes() == b"hello over tftp"

    rc = main(["put", "--host", host, "--port", str(port), "--remote", "copy.txt", str(local)])
    assert rc == 0


def test_get_missing_file_fails(tmp_path, make_server):
    _, (host, port) = make_server()
    rc = main(["get", "--host", host, "--port", str(port), "--out", str(tmp_path / "x"), "absent.txt"])
    assert rc == 1
