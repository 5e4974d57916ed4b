"""Django signals for cache invalidation.

Category settings are read on every admission and queue operation and are
cached; any change to a CategorySettings row drops its cache entry.
"""

from django.core.cache import cache
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from visits.models import CategorySettings
from visits.stores.django_store import category_cache_key


@receiver([post_save, post_delete], sender=CategorySettings)
def invalidate_category_cache(sender, instance, **kwargs):
    """Invalidate the cached settings when a category row is saved or deleted."""
    cache.delete(category_cache_key(instance.category))
