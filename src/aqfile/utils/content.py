SAMPLE_SIZE = 8192
BINARY_THRESHOLD = 0.3

# tab, line feed, carriage return
_TEXT_CONTROL_BYTES = frozenset((0x09, 0x0A, 0x0D))


def is_binary_content(data: bytes) -> bool:
    """
    Guess whether ``data`` would garble an interactive terminal.

    A NUL byte in the leading sample decides immediately. Otherwise the
    content is binary when more than 30% of the sample are control bytes
    other than tab, LF and CR. Used only to decide whether to ask before
    printing; the bytes are always written unchanged.
    """
    sample = data[:SAMPLE_SIZE]
    if not sample:
        return False

    non_text = 0
    for byte in sample:
        if byte == 0x00:
            return True
        if byte < 0x20 and byte not in _TEXT_CONTROL_BYTES:
            non_text += 1
    return non_text / len(sample) > BINARY_THRESHOLD
