"""Grocery category taxonomy and the anchor texts used to seed embeddings.

Two levels: a fixed set of parent aisles, each owning subcategories. Each
subcategory's anchor text is "<name>: <examples>" so the embedding captures
what actually sells under that heading, not just the label.
"""

from __future__ import annotations

from dataclasses import dataclass

PARENT_CATEGORIES: tuple[str, ...] = (
    "Produce",
    "Meat & Seafood",
    "Deli & Bakery",
    "Dairy & Eggs",
    "Pantry & Dry Goods",
    "Snacks & Sweets",
    "Beverages",
    "Frozen Foods",
    "Household & Cleaning",
    "Personal Care & Health",
)

TAXONOMY_TREE: dict[str, list[str]] = {
    "Produce": [
        "Fresh Fruit",
        "Fresh Vegetables",
        "Herbs & Aromatics",
        "Salad Greens & Kits",
        "Organic Produce",
        "Cut Fruit & Veggie Trays",
    ],
    "Meat & Seafood": [
        "Poultry",
        "Beef & Pork",
        "Seafood",
        "Plant-Based Meat",
        "Sausages & Hot Dogs",
        "Lamb & Specialty Meat",
    ],
    "Deli & Bakery": [
        "Deli Meat & Cheese",
        "Fresh Bakery",
        "Prepared Meals",
        "Sandwich Bread & Buns",
        "Tortillas & Wraps",
        "Dips & Spreads",
    ],
    "Dairy & Eggs": [
        "Milk & Cream",
        "Cheese",
        "Eggs & Butter",
        "Yogurt",
        "Sour Cream & Cottage Cheese",
        "Refrigerated Dough",
    ],
    "Pantry & Dry Goods": [
        "Pasta, Rice & Grains",
        "Canned & Jarred",
        "Baking & Spices",
        "Breakfast & Cereal",
        "Condiments",
        "Oils & Vinegars",
        "International Foods",
        "Peanut Butter & Jam",
    ],
    "Snacks & Sweets": [
        "Salty Snacks",
        "Sweet Snacks",
        "Nuts & Dried Fruit",
        "Crackers & Rice Cakes",
        "Snack Bars",
        "Candy & Gum",
    ],
    "Beverages": [
        "Water & Seltzer",
        "Soda & Soft Drinks",
        "Coffee & Tea",
        "Alcohol",
        "Juice",
        "Sports & Energy Drinks",
    ],
    "Frozen Foods": [
        "Frozen Meals & Pizza",
        "Frozen Veggies & Fruit",
        "Ice Cream & Desserts",
        "Frozen Breakfast",
        "Frozen Meat & Seafood",
        "Frozen Snacks & Appetizers",
    ],
    "Household & Cleaning": [
        "Paper Products",
        "Cleaning Supplies",
        "Pet Care",
        "Laundry",
        "Trash Bags & Food Storage",
        "Kitchen & Home Essentials",
    ],
    "Personal Care & Health": [
        "Toiletries",
        "Pharmacy",
        "Baby",
        "Oral Care",
        "Hair Care",
        "Skin Care & Cosmetics",
    ],
}

SUB_CATEGORY_EXAMPLES: dict[str, str] = {
    # Produce
    "Fresh Fruit": "Apples, Bananas, Berries, Grapes, Oranges, Melons",
    "Fresh Vegetables": "Lettuce, Onions, Potatoes, Carrots, Broccoli, Tomatoes, Peppers",
    "Herbs & Aromatics": "Garlic, Fresh Basil, Ginger, Parsley, Cilantro, Mint",
    "Salad Greens & Kits": "Spring mix, Bagged salad, Caesar salad kit, Spinach, Arugula",
    "Organic Produce": "Organic apples, Organic carrots, Organic bananas, Organic greens",
    "Cut Fruit & Veggie Trays": "Fruit cup, Veggie tray, Cut watermelon, Pineapple chunks",
    # Meat & Seafood
    "Poultry": "Chicken breast, Whole turkey, Chicken thighs, Ground turkey",
    "Beef & Pork": "Ground beef, Steaks, Bacon, Chops, Roast, Ham",
    "Seafood": "Salmon, Shrimp, Fresh fish, Tuna, Crab, Lobster",
    "Plant-Based Meat": "Impossible Burger, Tofu, Beyond Meat, Tempeh",
    "Sausages & Hot Dogs": "Bratwurst, Italian sausage, Hot dogs, Kielbasa, Chorizo",
    "Lamb & Specialty Meat": "Lamb chops, Leg of lamb, Veal, Bison, Duck",
    # Deli & Bakery
    "Deli Meat & Cheese": "Sliced Turkey, Provolone, Ham, Roast Beef, Salami",
    "Fresh Bakery": "Bagels, Muffins, store-baked Cookies, Rolls, Cakes, Donuts",
    "Prepared Meals": "Rotisserie Chicken, Sushi, Potato Salad, Coleslaw, Ready to eat meals",
    "Sandwich Bread & Buns": "White bread, Whole wheat bread, Hamburger buns, Hot dog buns",
    "Tortillas & Wraps": "Flour tortillas, Corn tortillas, Pita, Naan, Wraps",
    "Dips & Spreads": "Hummus, Guacamole, Salsa, Spinach dip, Queso",
    # Dairy & Eggs
    "Milk & Cream": "Whole milk, Almond milk, Coffee creamer, Soy milk, Oat milk, Half and half",
    "Cheese": "Blocks, Shredded, String cheese, Cheddar, Mozzarella, Parmesan",
    "Eggs & Butter": "Eggs, Butter, Margarine, Egg whites",
    "Yogurt": "Greek Yogurt, Yogurt Tubes, Yogurt Cups, Skyr, Kefir",
    "Sour Cream & Cottage Cheese": "Sour cream, Cottage cheese, Cream cheese, Ricotta",
    "Refrigerated Dough": "Crescent rolls, Biscuit dough, Cookie dough, Pie crust",
    # Pantry & Dry Goods
    "Pasta, Rice & Grains": "Spaghetti, Quinoa, Mac & Cheese boxes, Rice, Noodles, Oats",
    "Canned & Jarred": "Beans, Soup, Pasta Sauce, Pickles, Canned Vegetables, Canned Fruit",
    "Baking & Spices": "Flour, Sugar, Salt, Spices, Cake mix, Baking soda",
    "Breakfast & Cereal": "Cheerios, Oatmeal, Pancake mix, Granola, Cereal bars",
    "Condiments": "Ketchup, Mayo, Salad Dressing, Mustard, BBQ Sauce, Soy Sauce",
    "Oils & Vinegars": "Olive Oil, Vegetable Oil, Canola oil, Cooking spray, Balsamic vinegar",
    "International Foods": "Taco kits, Curry paste, Ramen, Coconut milk, Salsa verde",
    "Peanut Butter & Jam": "Peanut butter, Jelly, Jam, Nutella, Honey, Almond butter",
    # Snacks & Sweets
    "Salty Snacks": "Chips, Pretzels, Popcorn, Tortilla Chips, Cheese puffs",
    "Sweet Snacks": "Cookies, Candy bars, Fruit snacks, Chocolate, Gummies",
    "Nuts & Dried Fruit": "Almonds, Raisins, Peanuts, Cashews, Dried Mango",
    "Crackers & Rice Cakes": "Ritz, Goldfish, Triscuit, Saltines, Rice cakes",
    "Snack Bars": "Granola bars, Protein bars, Clif bars, Nature Valley, KIND bars",
    "Candy & Gum": "M&M's, Skittles, Chewing gum, Mints, Lollipops",
    # Beverages
    "Water & Seltzer": "Bottled water, LaCroix, Sparkling water, Mineral water",
    "Soda & Soft Drinks": "Coke, Pepsi, Energy drinks, Sprite, Dr Pepper, Gatorade",
    "Coffee & Tea": "Ground coffee, K-Cups, Tea bags, Iced Coffee, Loose leaf tea",
    "Alcohol": "Beer, Wine, Spirits, Hard Seltzer",
    "Juice": "Orange juice, Apple juice, Cranberry juice, Lemonade, Juice boxes",
    "Sports & Energy Drinks": "Powerade, Red Bull, Monster, Electrolyte drinks",
    # Frozen Foods
    "Frozen Meals & Pizza": "Frozen Pizza, Digiorno, Lean Cuisine, Frozen Dinners, Burritos",
    "Frozen Veggies & Fruit": "Frozen Peas, Frozen Corn, Smoothie mixes, Frozen Berries",
    "Ice Cream & Desserts": "Ice Cream Pints, Popsicles, Gelato, Sorbet, Frozen Yogurt",
    "Frozen Breakfast": "Frozen waffles, Eggo, Breakfast sandwiches, Frozen pancakes",
    "Frozen Meat & Seafood": "Frozen chicken nuggets, Frozen shrimp, Fish sticks, Frozen burgers",
    "Frozen Snacks & Appetizers": "Pizza rolls, Mozzarella sticks, Egg rolls, Frozen wings",
    # Household & Cleaning
    "Paper Products": "Toilet paper, Paper towels, Napkins, Tissues, Paper plates",
    "Cleaning Supplies": "Dish soap, Sponges, Bleach, All purpose cleaner, Disinfecting wipes",
    "Pet Care": "Dog food, Cat litter, Cat food, Dog treats",
    "Laundry": "Laundry detergent, Tide pods, Fabric softener, Dryer sheets, Stain remover",
    "Trash Bags & Food Storage": "Trash bags, Ziploc bags, Aluminum foil, Plastic wrap",
    "Kitchen & Home Essentials": "Light bulbs, Batteries, Candles, Air freshener, Matches",
    # Personal Care & Health
    "Toiletries": "Body wash, Deodorant, Soap, Razor, Shaving cream",
    "Pharmacy": "Vitamins, Pain relief, First aid, Cough syrup, Supplements",
    "Baby": "Diapers, Wipes, Formula, Baby food",
    "Oral Care": "Toothpaste, Toothbrush, Mouthwash, Dental floss",
    "Hair Care": "Shampoo, Conditioner, Hair spray, Hair color, Dry shampoo",
    "Skin Care & Cosmetics": "Lotion, Sunscreen, Face wash, Makeup, Lip balm",
}


@dataclass(frozen=True)
class SubCategoryDescriptor:
    name: str
    parent: str
    embedding_text: str


def build_sub_categories(
    tree: dict[str, list[str]] = TAXONOMY_TREE,
    examples: dict[str, str] = SUB_CATEGORY_EXAMPLES,
) -> list[SubCategoryDescriptor]:
    """Flatten the tree parent-first, preserving declaration order.

    Order matters only for tie-breaking during classification: the first
    anchor with the maximum similarity wins.
    """
    flat: list[SubCategoryDescriptor] = []
    for parent, subs in tree.items():
        for sub in subs:
            text = examples.get(sub, "")
            flat.append(
                SubCategoryDescriptor(
                    name=sub,
                    parent=parent,
                    embedding_text=f"{sub}: {text}" if text else sub,
                )
            )
    return flat


def _check_taxonomy(subs: list[SubCategoryDescriptor]) -> None:
    unknown = set(TAXONOMY_TREE) - set(PARENT_CATEGORIES)
    if unknown:
        raise ValueError(f"Taxonomy parents not declared in PARENT_CATEGORIES: {sorted(unknown)}")
    names = [s.name for s in subs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate subcategory names in taxonomy: {duplicates}")


SUB_CATEGORIES: list[SubCategoryDescriptor] = build_sub_categories()
_check_taxonomy(SUB_CATEGORIES)


def is_parent_category(name: str) -> bool:
    return name in PARENT_CATEGORIES
