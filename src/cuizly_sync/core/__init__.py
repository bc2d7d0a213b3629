"""
Core synchronization primitives, independent of any vendor:
CacheSlot, OptimisticMutator, Reconciler, SubscriptionManager, ViewScope.
"""
