"""Prompt text and JSON response contracts for every generation task"""

from typing import Iterable, Optional, Sequence

from eatwhat.schemas.recipe import IngredientItem
from eatwhat.services.generation_client import ResponseContract

SYSTEM_PROMPT_BASE = """
你是专业中餐研发主厨与家庭烹饪教学专家。

输出风格必须综合：
1) 参考菜谱的严谨：食材克重/毫升、火候、时间、顺序精确。
2) 家常菜谱的调味与口感技巧：可执行、稳定成功率。

规则：
- 必须使用中文。
- 所有可量化信息尽量量化（g/ml/min/温度区间）。
- 食材名称尽量使用常见中文名称。
- 不要虚构用户已有食材，缺失项必须能明确列出。
- 如果提供了“参考菜谱片段”，优先参考其做法与配比，再结合常见调味技巧做合理补充。
"""

SYSTEM_PROMPT_RECOMMEND = """
任务：根据用户已有食材，按难度分级推荐菜品。
要求：
- 输出 recommendations 数组，按 easy / medium / hard 三个难度组织，每个难度 1 道，共 3 道。
- 若某个难度确实无合适菜可不返回该难度；完全无法推荐时返回空数组。
- 每道菜给出推荐理由、主要所需食材、预计时间、难度。
- ID 使用 dish_easy_1 / dish_medium_1 / dish_hard_1 这类可读格式。
- 若参考片段中有高度匹配的菜名/做法，优先推荐该方向。
- 每条 reason 控制在 30 个汉字内，requiredIngredients 最多 6 项。
"""

SYSTEM_PROMPT_RECOMMEND_PREVIEW = """
- 每道菜附带 recipePreview：servings、requiredIngredients、最多 6 步 steps（每步含 keyPoint）、tips、timing。
"""

SYSTEM_PROMPT_RECIPE = """
任务：生成结构化菜谱详情。
要求：
- 提供所需总食材 requiredIngredients。
- 步骤最多 8 步，每步都必须有 keyPoint。
- keyPoint 必须是可执行关键点（火候、时长、状态判断、常见失误规避）。
"""

SYSTEM_PROMPT_RECIPE_WEB = """
附加要求：
- 当前未命中本地参考菜谱，请使用联网检索补充权威做法。
- 优先检索中文菜谱站点或高质量内容来源，最多引用 3 条。
- 填写 webReferences（title/url/snippet）。
"""

SYSTEM_PROMPT_RECIPE_FILL = """
任务：为已确定的菜品补全烹饪步骤。
要求：
- 只输出 steps、tips、timing，不要改动菜名与食材。
- 步骤最多 8 步，只能使用给定的食材与常见调味料。
- tips 1-3 条。
"""

SYSTEM_PROMPT_INGREDIENT_EXTRACT = """
任务：从用户的自然语言描述中提取其已有的食材。
要求：
- 只输出食材名称，不要数量、单位、口语词。
- 同一食材只保留一个常见中文名称（如 番茄 统一为 西红柿）。
- 不要添加用户没有提到的食材，最多 20 项。
"""

RECOMMEND_CONTRACT = ResponseContract(
    example="""{
  "recommendations": [
    {
      "id": "dish_easy_1",
      "name": "菜名",
      "reason": "推荐理由",
      "requiredIngredients": [{ "name": "食材", "amount": "100g" }],
      "estimatedTimeMin": 15,
      "difficulty": "easy",
      "recipePreview": {
        "servings": "2人份",
        "requiredIngredients": [{ "name": "食材", "amount": "100g" }],
        "steps": [{ "stepNo": 1, "instruction": "步骤描述", "keyPoint": "关键点" }],
        "tips": ["技巧1"],
        "timing": { "prepMin": 5, "cookMin": 10, "totalMin": 15 }
      }
    }
  ]
}""",
    expected_keys=("recommendations",),
)

RECOMMEND_LITE_CONTRACT = ResponseContract(
    example="""{
  "recommendations": [
    {
      "id": "dish_easy_1",
      "name": "菜名",
      "reason": "推荐理由",
      "requiredIngredients": [{ "name": "食材", "amount": "100g" }],
      "estimatedTimeMin": 15,
      "difficulty": "easy"
    }
  ]
}""",
    expected_keys=("recommendations",),
)

RECIPE_CONTRACT = ResponseContract(
    example="""{
  "dishName": "番茄炒蛋",
  "servings": "2人份",
  "requiredIngredients": [{ "name": "西红柿", "amount": "300g" }],
  "steps": [{ "stepNo": 1, "instruction": "步骤描述", "keyPoint": "关键点" }],
  "tips": ["技巧1"],
  "webReferences": [{ "title": "来源标题", "url": "https://example.com", "snippet": "摘要" }],
  "timing": { "prepMin": 8, "cookMin": 7, "totalMin": 15 }
}""",
    expected_keys=("dishName", "steps", "requiredIngredients"),
)

FILL_CONTRACT = ResponseContract(
    example="""{
  "steps": [{ "stepNo": 1, "instruction": "步骤描述", "keyPoint": "关键点" }],
  "tips": ["技巧1"],
  "timing": { "prepMin": 8, "cookMin": 10, "totalMin": 18 }
}""",
    expected_keys=("steps",),
)

EXTRACT_CONTRACT = ResponseContract(
    example="""{
  "ingredients": ["土豆", "牛肉", "西红柿"]
}""",
    expected_keys=("ingredients",),
)


def _join(items: Iterable[str]) -> str:
    return "、".join(items) or "无"


def build_recommend_user_prompt(input_text: str, owned_ingredients: Sequence[str], context: str) -> str:
    return (
        f"用户输入：{input_text}\n"
        f"用户已有食材：{_join(owned_ingredients)}\n"
        f"请严格按目标 JSON 结构输出。\n\n"
        f"【参考菜谱片段】\n{context}"
    )


def build_recipe_user_prompt(dish_name: str, owned_ingredients: Sequence[str]) -> str:
    return (
        f"目标菜品：{dish_name}\n"
        f"用户已有食材：{_join(owned_ingredients)}\n"
        "当前未命中本地参考菜谱，请联网检索后再生成菜谱，并严格按目标 JSON 结构输出。"
    )


def build_fill_user_prompt(
    dish_name: str,
    required_ingredients: Sequence[IngredientItem],
    owned_ingredients: Sequence[str],
    reason: Optional[str] = None,
    estimated_time_min: Optional[int] = None,
) -> str:
    lines = [
        f"目标菜品：{dish_name}",
        f"所需食材：{_join(f'{item.name} {item.amount}' for item in required_ingredients)}",
        f"用户已有食材：{_join(owned_ingredients)}",
    ]
    if reason:
        lines.append(f"推荐理由：{reason}")
    if estimated_time_min:
        lines.append(f"预计用时：{estimated_time_min} 分钟")
    lines.append("请严格按目标 JSON 结构输出。")
    return "\n".join(lines)


def build_extract_user_prompt(input_text: str, raw_candidates: Sequence[str]) -> str:
    return f"用户描述：{input_text}\n候选词：{_join(raw_candidates)}\n请严格按目标 JSON 结构输出。"
