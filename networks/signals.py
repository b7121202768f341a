"""
Lifecycle and persistence signals.

This layer never writes storage. Whatever persists products, conversions and
config updates connects receivers to these signals.

Usage::

    from django.dispatch import receiver
    from networks.signals import conversion_received

    @receiver(conversion_received)
    def store_conversion(sender, payload, config, **kwargs):
        ...

Every signal is sent with ``sender`` set to the ``NetworkType`` involved.
"""

from django.dispatch import Signal

# ── Data hand-off ───────────────────────────────────────────────
# kwargs: config, products, operation
products_synced = Signal()
# kwargs: config, payload, conversion (None when the body carries no conversion)
conversion_received = Signal()
conversion_updated = Signal()
conversion_cancelled = Signal()
# kwargs: config, payload
product_updated = Signal()
# kwargs: config, structures
commissions_synced = Signal()

# ── Sync lifecycle ──────────────────────────────────────────────
# kwargs: config, full_sync
sync_started = Signal()
# kwargs: config, operation, duration
sync_completed = Signal()
# kwargs: config, error, duration (plus operation when the adapter finished the run)
sync_failed = Signal()

# ── Config lifecycle ────────────────────────────────────────────
# kwargs: config
network_config_added = Signal()
# kwargs: tenant_id
network_config_removed = Signal()
# kwargs: config, error
network_config_error = Signal()
