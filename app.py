# Thin entrypoint exposing the Flask `server`
from worldstats import create_app, get_settings

server = create_app()
app = server


if __name__ == "__main__":  # pragma: no cover
    # For production use gunicorn with the threaded worker, e.g.:
    # gunicorn app:server -c gunicorn.conf.py
    settings = get_settings()
    server.run(host="0.0.0.0", port=settings.port, debug=settings.debug, threaded=True)
