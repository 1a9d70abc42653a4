import logging

import uvicorn

from newscrawl.api.server import create_app
from newscrawl.container import Container


def main(container=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if container is None:
        container = Container()
    app = create_app(container)
    host = container.config.SERVER_HOST() or "0.0.0.0"
    port = int(container.config.SERVER_PORT() or 8000)
    logging.getLogger(__name__).info("NewsCrawl listening on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == '__main__':
    main()
