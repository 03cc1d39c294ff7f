"""Builds the grading instruction sent to Gemini."""

from typing import Final, Tuple

from grammar_coach.core.submission import Submission

ANONYMOUS: Final[str] = "匿名"
UNSPECIFIED: Final[str] = "未記入"

PERSONA: Final[str] = (
    "あなたは大学入試英語のスペシャリストであり、予備校のカリスマ講師です。\n"
    "以下の生徒が書いた「仮定法の説明」を採点し、厳しくも愛のある指導を行ってください。"
)

RUBRIC: Final[Tuple[Tuple[str, str], ...]] = (
    ("事実への反実", "「現実とは違うこと」を表すという本質を理解しているか？"),
    ("時制のズレ", "「現在のことは過去形」「過去のことは過去完了形」というルールを説明できているか？"),
    ("直説法との対比", "直説法（ただの条件文）との違いに触れているか？"),
)

AI_SUSPICION_MESSAGE: Final[str] = "「これはAIで導き出したものではないですか？本当にあなたの言葉や考えですか？」"

OUTPUT_SECTIONS: Final[Tuple[Tuple[str, str], ...]] = (
    ("得点", "100点満点で採点（厳しめに）。「NN点」の形で数字を書くこと。"),
    ("良い点", "理解できているポイントを褒める。"),
    ("修正・解説", "間違っている点や、説明不足な点を補足講義する。"),
    ("入試のポイント", "入試でよく出るポイントを一つ伝授する。"),
)

TONE: Final[str] = "口調は「熱心な予備校の先生」のように、語りかけるスタイルでお願いします。"


def _or_default(value: str, default: str) -> str:
    return value if value else default


def build_grading_prompt(submission: Submission) -> str:
    """Assembles the rubric-bound grading prompt for one submission.

    Missing identity fields are replaced by placeholders; the explanation
    is assumed to be validated non-empty by `normalize_payload`.
    """
    if not submission.explanation.strip():
        raise ValueError("Cannot build a grading prompt for an empty explanation.")

    rubric = "\n".join(
        f"{i}. **{title}**: {question}" for i, (title, question) in enumerate(RUBRIC, start=1)
    )
    sections = "\n".join(
        f"{i}. **{title}**: {rule}" for i, (title, rule) in enumerate(OUTPUT_SECTIONS, start=1)
    )

    return f"""{PERSONA}

## 生徒情報
- 氏名: {_or_default(submission.name, ANONYMOUS)}
- 学年: {_or_default(submission.grade, UNSPECIFIED)}
- 志望校: {_or_default(submission.target, UNSPECIFIED)}

## 生徒による「仮定法」の説明
\"\"\"
{submission.explanation}
\"\"\"

## 評価基準
{rubric}

## 特殊ルール：AI使用の検知
もし、生徒の説明が「明らかにAI（ChatGPTやGeminiなど）が出力した文章そのままである（99%クロ）」と判断できる場合のみ、
解説の最後に改行を入れて、以下のメッセージを太字で付け加えてください。
**{AI_SUSPICION_MESSAGE}**
※ 生徒が自分で一生懸命書いた拙い文章の場合は、絶対にこのメッセージを付けないでください。

## 出力フォーマット (Markdown)
以下の4つの見出しをこの順番で必ず出力してください。
{sections}

{TONE}
"""
