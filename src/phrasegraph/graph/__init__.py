"""Semantic graph of words, phrases and topics.

Words merge by lemma and accumulate every part-of-speech tag they have been
seen with; phrases link to their words and carry the chunks extracted from
them. The graph lives in memory and is persisted as a single snapshot.
"""
