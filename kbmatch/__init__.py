"""
kbmatch - semantic matching over a fixed question/answer knowledge base.
Category pre-filtering, embedding similarity ranking and a versioned embedding cache.
"""
