from __future__ import annotations

STOP_WORDS = frozenset(
    """
    a an the
    i me my myself we our ours ourselves you your yours yourself yourselves
    he him his himself she her hers herself it its itself they them their theirs themselves
    about above across after against along among around at before behind below beneath beside
    between beyond by down during except for from in inside into like near of off on onto out
    outside over past since through throughout to toward towards under underneath until up upon
    with within without
    and but or nor yet so because if when where while although though unless whether
    am is are was were be been being have has had having do does did doing will would shall
    should can could may might must
    very really quite just only also too well much more most less least such here there why how
    all any both each few many some no not own same than then once
    this that these those what which who whom whose
    one two three four five six seven eight nine ten first second third last next other another
    oh ah yes ok okay hi hello hey bye goodbye
    don't doesn't didn't won't wouldn't shouldn't couldn't can't isn't aren't wasn't weren't
    hasn't haven't hadn't i'm you're he's she's it's we're they're i've you've we've they've
    i'll you'll he'll she'll it'll we'll they'll i'd you'd he'd she'd it'd we'd they'd
    """.split()
)


def is_stop_word(s: str | None) -> bool:
    if not s:
        return False
    return s.lower() in STOP_WORDS


def stop_word_ratio(words: list[str]) -> float:
    if not words:
        return 0.0
    return sum(1 for w in words if is_stop_word(w)) / len(words)
