"""Supabase-backed repositories."""
