"""
Synced resources (one per former UI hook).

Each resource bundles a CacheSlot, an OptimisticMutator, a Reconciler and
a realtime subscription, all scoped to a mounted view:
  favorites, notifications, profile, ratings, reservations
"""
