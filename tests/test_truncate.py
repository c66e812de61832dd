from codeswarm.utils.truncate import estimate_tokens, limit_lines, limit_output, truncate_output


def test_short_output_is_untouched():
    result = truncate_output("hello\nworld", max_tokens=100)

    assert result.truncated is False
    assert result.text == "hello\nworld"
    assert result.total_lines == 2


def test_empty_output():
    result = truncate_output("")

    assert result.text == ""
    assert result.truncated is False
    assert result.total_lines == 0


def test_long_output_keeps_head_and_tail():
    output = "".join(f"line {i}\n" for i in range(1000))

    result = truncate_output(output, max_tokens=50)

    assert result.truncated is True
    assert result.text.startswith("Total output lines: 1000\nline 0\n")
    assert result.text.rstrip().endswith("line 999")
    assert "tokens truncated..." in result.text
    assert result.tokens_truncated > 0
    assert estimate_tokens(result.text) < result.original_tokens


def test_multibyte_characters_survive_the_cut():
    output = "é" * 1000

    text = limit_output(output, max_tokens=10)

    text.encode("utf-8")
    assert "tokens truncated" in text


def test_limit_lines_keeps_both_ends():
    output = "\n".join(str(i) for i in range(30))

    text = limit_lines(output, max_lines=10, head_lines=5)

    assert text.startswith("Total output lines: 30\n0\n1\n2\n3\n4\n")
    assert "...20 lines omitted..." in text
    assert text.endswith("29")


def test_limit_lines_short_input():
    assert limit_lines("a\nb", max_lines=10) == "a\nb"
