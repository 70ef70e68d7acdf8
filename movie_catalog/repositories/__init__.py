"""
Repository layer - Data access abstractions.

This layer provides the genre and movie store interfaces and their SQL
implementations, hiding persistence details from the movie repository.
"""
