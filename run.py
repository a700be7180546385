import argparse
import logging

from convostack import create_app


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog="convostack", description="Serve the ConvoStack folder API."
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8072)
    parser.add_argument(
        "--debug", action="store_true", help="enable the Flask debugger and request log"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    if not args.debug:
        # Per-request access lines drown out the folder API's own log.
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    app = create_app()
    app.logger.info("ConvoStack folder API on http://%s:%d", args.host, args.port)
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
