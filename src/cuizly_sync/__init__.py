"""
cuizly-sync

Client-side data synchronization for Cuizly: a local cache per resource,
kept in line with the Supabase row store through realtime push,
optimistic mutation and periodic reconciliation.

Layers:
  - core:      cache slot, optimistic mutator, reconciler, subscription manager
  - store:     row store protocol + supabase-py adapter
  - resources: favorites, notifications, profile, ratings, reservations
"""
