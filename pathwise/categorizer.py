"""
Keyword Classifier Module
Default rules for transaction categories, goal categories and goal intent
"""

from typing import Dict, Optional, Protocol

from .models import GoalCategory


class Classifier(Protocol):
    """Anything that can label transactions and goal-creation messages"""

    def categorize(self, transaction: Dict) -> str: ...

    def goal_category(self, goal_name: str) -> GoalCategory: ...

    def wants_goal(self, message: str) -> bool: ...


class KeywordClassifier:
    """Categorizes by substring match against keyword tables"""

    CATEGORY_RULES = {
        'FOOD': ['lulu', 'carrefour', 'alosra', 'jawad', 'market', 'grocery', 'restaurant',
                 'cafe', 'pizza', 'burger', 'talabat', 'coffee', 'starbucks', 'costa'],
        'TRANSPORT': ['uber', 'careem', 'taxi', 'bus', 'petrol', 'fuel', 'parking', 'bapco'],
        'UTILITIES': ['electricity', 'ewa', 'water', 'internet', 'batelco', 'zain', 'stc', 'phone'],
        'SUBSCRIPTIONS': ['netflix', 'spotify', 'shahid', 'osn', 'disney', 'gym', 'fitness',
                          'amazon prime', 'apple.com'],
        'SHOPPING': ['amazon', 'noon', 'ikea', 'zara', 'h&m', 'centrepoint', 'mall'],
        'HEALTHCARE': ['pharmacy', 'hospital', 'clinic', 'doctor', 'dentist'],
        'HOUSING': ['rent', 'lease', 'landlord', 'mortgage'],
        'EDUCATION': ['school', 'university', 'tuition', 'course'],
        'ENTERTAINMENT': ['cinema', 'vox', 'steam', 'playstation', 'xbox'],
    }

    GOAL_RULES = [
        (GoalCategory.PROPERTY, ['house', 'apartment', 'home', 'flat']),
        (GoalCategory.VEHICLE, ['car', 'tesla', 'vehicle', 'motorbike']),
        (GoalCategory.TRAVEL, ['travel', 'trip', 'vacation', 'holiday']),
        (GoalCategory.EDUCATION, ['education', 'study', 'university', 'masters', 'degree']),
        (GoalCategory.EMERGENCY, ['emergency', 'rainy day']),
        (GoalCategory.SAVINGS, ['savings', 'save up', 'fund', 'business', 'startup']),
    ]

    INTENT_PHRASES = [
        'create a goal', 'new goal', 'save for', 'want to save', 'i want to buy',
        'planning to buy', 'want to create', 'add a goal',
    ]

    def categorize(self, transaction: Optional[Dict]) -> str:
        """
        Categorize a transaction based on merchant and description

        Args:
            transaction: Dict with 'merchant' and 'description' fields

        Returns:
            Category string, 'OTHER' when nothing matches
        """
        if transaction is None:
            return 'OTHER'

        description = (transaction.get('description') or '').lower()
        merchant = (transaction.get('merchant') or '').lower()

        for category, keywords in self.CATEGORY_RULES.items():
            for keyword in keywords:
                if keyword in description or keyword in merchant:
                    return category

        return 'OTHER'

    def goal_category(self, goal_name: str) -> GoalCategory:
        """Suggest a goal category from its name"""
        lower = (goal_name or '').lower()
        for category, keywords in self.GOAL_RULES:
            if any(keyword in lower for keyword in keywords):
                return category
        return GoalCategory.OTHER

    def wants_goal(self, message: str) -> bool:
        """True when a chat message asks to create a savings goal"""
        lower = (message or '').lower()
        return any(phrase in lower for phrase in self.INTENT_PHRASES)
