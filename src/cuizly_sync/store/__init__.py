"""Row store protocol and its Supabase implementation."""
