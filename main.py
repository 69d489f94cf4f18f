# main.py
import sys
import argparse
from config import load_config, storage_endpoint, auth_headers
from transport import Transport


def build_parser():
    p = argparse.ArgumentParser(description="Resumable uploads to Supabase Storage. Run without files to open the window.")
    p.add_argument("paths", nargs="*", help="files to upload (headless mode)")
    p.add_argument("--config", default=None, help="path to config.json")
    p.add_argument("--bucket", default=None, help="override the bucket from config")
    p.add_argument("--remote-base", default=None, help="prefix for object names")
    p.add_argument("--chunk-size", type=int, default=None, help="chunk size in bytes")
    return p


def run_headless(args, cfg):
    from uploader import upload_items

    if args.bucket:
        cfg["bucket"] = args.bucket
    if args.remote_base is not None:
        cfg["remote_base"] = args.remote_base
    if args.chunk_size is not None:
        if args.chunk_size <= 0:
            print("--chunk-size must be > 0", file=sys.stderr)
            return 2
        cfg["chunk_size"] = args.chunk_size

    transport = Transport(base_headers=auth_headers(cfg), max_concurrent=int(cfg["max_concurrent"]))
    try:
        report = upload_items(
            args.paths,
            cfg["bucket"],
            transport,
            storage_endpoint(cfg),
            remote_base=cfg["remote_base"],
            upsert=bool(cfg["upsert"]),
            chunk_size=int(cfg["chunk_size"]),
            max_attempts=int(cfg["max_attempts"]),
            retry_delay=float(cfg["retry_delay"]),
            log_cb=print,
        )
    finally:
        transport.close()
    for result in report.uploaded:
        print(result.path)
    return 0 if report.ok else 1


def main(argv=None):
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config)
    if args.paths:
        return run_headless(args, cfg)

    from PyQt6.QtWidgets import QApplication
    from ui_main import MainWindow

    app = QApplication(sys.argv)
    w = MainWindow(cfg)
    w.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
