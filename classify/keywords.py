"""
Keyword taxonomy for activity categories.
CATEGORY_RULES is ordered by priority: the classifier walks it top to bottom and the first
category with any matching keyword wins, so the order is part of the behavior.
Keywords are matched as lower-case substrings and mix English, Chinese and conventional-commit prefixes.
"""
from typing import Dict, Iterable, List, Tuple

BUG_FIX = 'bug_fix'
FEATURE = 'feature'
IMPROVEMENT = 'improvement'
DOCUMENTATION = 'documentation'
TEST = 'test'
CONFIG = 'config'
OTHER = 'other'


class CategoryRule:
    """A category with its ordered keyword list and display description."""

    def __init__(self, category: str, keywords: Iterable[str], description: str):
        self.category = category
        self.keywords: Tuple[str, ...] = tuple(k.lower() for k in keywords)
        self.description = description

    def __repr__(self):
        return f"CategoryRule({self.category!r}, {len(self.keywords)} keywords)"


CATEGORY_RULES: List[CategoryRule] = [
    CategoryRule(
        BUG_FIX,
        [
            'fix', 'bugfix', 'hotfix', 'patch', 'resolve', 'solved', 'repair',
            '修复', '修正', '解决', '修改', '补丁', '热修复', '紧急修复', 'bug',
            'fix:', 'hotfix:', 'patch:',
        ],
        'Bug fix',
    ),
    CategoryRule(
        FEATURE,
        [
            'feat', 'feature', 'add', 'new', 'implement', 'create', 'develop',
            '新增', '添加', '功能', '特性', '开发', '实现', '创建', '新功能',
            'feat:', 'feature:',
        ],
        'New feature',
    ),
    CategoryRule(
        IMPROVEMENT,
        [
            'improve', 'enhancement', 'optimize', 'refactor', 'update', 'upgrade', 'enhance',
            '优化', '改进', '增强', '提升', '重构', '更新', '升级', '完善',
            'perf:', 'refactor:', 'style:',
        ],
        'Improvement',
    ),
    CategoryRule(
        DOCUMENTATION,
        [
            'docs', 'documentation', 'readme', 'comment', 'guide', 'manual',
            '文档', '说明', '注释', '帮助', '指南', '手册',
            'docs:',
        ],
        'Documentation',
    ),
    CategoryRule(
        TEST,
        [
            'test', 'testing', 'spec', 'unit test', 'integration test',
            '测试', '单元测试', '集成测试', '测试用例',
            'test:',
        ],
        'Testing',
    ),
    CategoryRule(
        CONFIG,
        [
            'config', 'configuration', 'setting', 'env', 'environment',
            '配置', '设置', '环境', '参数',
            'chore:', 'ci:',
        ],
        'Configuration',
    ),
    # fallback only; never matched by keyword
    CategoryRule(OTHER, [], 'Other'),
]

ALL_CATEGORIES: Tuple[str, ...] = tuple(rule.category for rule in CATEGORY_RULES)
CATEGORY_DESCRIPTIONS: Dict[str, str] = {rule.category: rule.description for rule in CATEGORY_RULES}


def describe(category: str) -> str:
    return CATEGORY_DESCRIPTIONS.get(category, category)
