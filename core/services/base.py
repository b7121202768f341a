"""
Base Service
=============

Foundation for the adapter and manager classes. Provides a standardised
per-module logger.
"""

import logging


class BaseService:
    """
    Service classes inherit from this.

    Subclass example::

        class CJAdapter(BaseService):
            def sync_products(self, options):
                self.logger.info("Syncing CJ catalog")

    ``cls.logger`` is named after the subclass's module, so the
    ``networks`` logger config in settings covers every adapter.
    """

    logger: logging.Logger = logging.getLogger(__name__)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.logger = logging.getLogger(cls.__module__)
