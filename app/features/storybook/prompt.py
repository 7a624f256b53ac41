# app/features/storybook/prompt.py
def build_story_structure_prompt(*, child_name: str, gender: str, description: str,
                                 style: str, page_count: int) -> str:
    return f"""
You are a world-class children's book author and illustrator art director.

Task: Create a short, engaging, and educational storybook based on a child's real-day activity.

**INPUTS:**
* **Child's Name:** "{child_name}"
* **Gender:** "{gender}"
* **Activity/Event:** "{description}"
* **Visual Style:** "{style}" (e.g., watercolor, 3D clay, cartoon, pencil sketch)

**REQUIREMENTS:**
1. The story should have a clear beginning, middle, and end.
2. Be positive, encouraging, and easy for a child to understand.
3. Length: Exactly {page_count} pages.
4. For each page, provide the Story Text (2-3 sentences max) and a detailed Image Prompt.
5. CRITICAL: In the Image Prompts, explicitly describe the character "{child_name}" efficiently so they look consistent across all pages (e.g., "a cute little boy wearing a red hoodie"). Include the art style "{style}" in every image prompt.

**JSON SHAPE:**
```json
{{
  "title": "Catchy title for the book",
  "theme": "The visual theme or world setting",
  "moral": "The lesson or positive takeaway",
  "pages": [
    {{"text": "The story text for this page", "image_prompt": "Detailed prompt for generating the illustration"}}
  ]
}}
```
Return only that JSON object, with exactly {page_count} entries in "pages".
""".strip()
