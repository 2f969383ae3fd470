from task_query.parsing.vagueness import VagueQueryDetector


def test_generic_question_is_vague() -> None:
    detector = VagueQueryDetector()
    result = detector.detect(detector.tokenize("what should I do"))
    assert result.is_vague
    assert result.ratio == 1.0


def test_specific_term_prevents_vagueness_regardless_of_ratio() -> None:
    detector = VagueQueryDetector(threshold=0.5)
    result = detector.detect(detector.tokenize("what should I do on the API project"))
    assert result.ratio >= 0.5
    assert result.specific_count == 2
    assert not result.is_vague


def test_chinese_generic_question_is_segmented_and_vague() -> None:
    detector = VagueQueryDetector()
    tokens = detector.tokenize("我应该做什么")
    assert tokens == ["我", "应该", "做", "什么"]
    assert detector.detect(tokens).is_vague


def test_adding_specific_tokens_never_increases_ratio() -> None:
    detector = VagueQueryDetector()
    base = "what should i do"
    previous = detector.detect(detector.tokenize(base)).ratio
    for extra in ["deploy", "payment", "service", "部署"]:
        base = f"{base} {extra}"
        ratio = detector.detect(detector.tokenize(base)).ratio
        assert ratio <= previous
        previous = ratio


def test_empty_query_is_not_vague() -> None:
    result = VagueQueryDetector().detect([])
    assert not result.is_vague
    assert result.token_count == 0
