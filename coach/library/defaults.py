from __future__ import annotations

import re

DEFAULT_EXERCISES = [
    {
        "name": "Chair Squats",
        "primary_muscles": ["quadriceps", "glutes"],
        "secondary_muscles": ["hamstrings", "core"],
        "equipment_required": ["none"],
        "difficulty": "beginner",
        "instructions": [
            "Stand in front of a sturdy chair with feet hip-width apart.",
            "Push hips back and lower until you lightly touch the seat.",
            "Drive through your heels to stand back up.",
        ],
        "tips": ["Keep your chest lifted.", "Use the armrests for support if needed."],
    },
    {
        "name": "Wall Push-ups",
        "primary_muscles": ["chest"],
        "secondary_muscles": ["shoulders", "triceps"],
        "equipment_required": ["none"],
        "difficulty": "beginner",
        "instructions": [
            "Stand an arm's length from a wall and place palms at shoulder height.",
            "Bend elbows to bring your chest toward the wall.",
            "Press back to the start position.",
        ],
        "tips": ["Keep your body in a straight line."],
    },
    {
        "name": "Glute Bridges",
        "primary_muscles": ["glutes"],
        "secondary_muscles": ["hamstrings", "core"],
        "equipment_required": ["none"],
        "difficulty": "beginner",
        "instructions": [
            "Lie on your back with knees bent and feet flat.",
            "Squeeze your glutes and lift your hips until knees, hips and shoulders align.",
            "Pause, then lower slowly.",
        ],
        "tips": ["Avoid arching your lower back at the top."],
    },
    {
        "name": "Bird Dog",
        "primary_muscles": ["core"],
        "secondary_muscles": ["back", "glutes"],
        "equipment_required": ["none"],
        "difficulty": "beginner",
        "instructions": [
            "Start on hands and knees.",
            "Extend one arm forward and the opposite leg back.",
            "Hold briefly, return, and switch sides.",
        ],
        "tips": ["Move slowly and keep hips level."],
    },
    {
        "name": "Standing Calf Raises",
        "primary_muscles": ["calves"],
        "secondary_muscles": [],
        "equipment_required": ["none"],
        "difficulty": "beginner",
        "instructions": [
            "Stand tall holding a counter for balance.",
            "Rise onto the balls of your feet.",
            "Lower your heels with control.",
        ],
        "tips": [],
    },
    {
        "name": "Dumbbell Bicep Curls",
        "primary_muscles": ["biceps"],
        "secondary_muscles": ["forearms"],
        "equipment_required": ["dumbbells"],
        "difficulty": "beginner",
        "instructions": [
            "Hold a dumbbell in each hand, palms forward.",
            "Curl the weights toward your shoulders keeping elbows still.",
            "Lower slowly.",
        ],
        "tips": ["Do not swing the weights."],
    },
    {
        "name": "Seated Dumbbell Shoulder Press",
        "primary_muscles": ["shoulders"],
        "secondary_muscles": ["triceps"],
        "equipment_required": ["dumbbells", "bench"],
        "difficulty": "intermediate",
        "instructions": [
            "Sit upright holding dumbbells at shoulder height.",
            "Press the weights overhead without locking elbows.",
            "Lower back to shoulder height.",
        ],
        "tips": ["Keep your back against the bench."],
    },
    {
        "name": "Dumbbell Bent-Over Rows",
        "primary_muscles": ["back"],
        "secondary_muscles": ["biceps", "shoulders"],
        "equipment_required": ["dumbbells"],
        "difficulty": "intermediate",
        "instructions": [
            "Hinge at the hips with a flat back, dumbbells hanging below shoulders.",
            "Pull the weights toward your hips.",
            "Lower under control.",
        ],
        "tips": ["Squeeze your shoulder blades together."],
    },
    {
        "name": "Resistance Band Pull-Aparts",
        "primary_muscles": ["shoulders", "back"],
        "secondary_muscles": [],
        "equipment_required": ["resistance_bands"],
        "difficulty": "beginner",
        "instructions": [
            "Hold a band in front of you at shoulder height.",
            "Pull the band apart by moving your arms out to the sides.",
            "Return slowly.",
        ],
        "tips": ["Keep a slight bend in the elbows."],
    },
    {
        "name": "Step-ups",
        "primary_muscles": ["quadriceps", "glutes"],
        "secondary_muscles": ["calves"],
        "equipment_required": ["bench"],
        "difficulty": "intermediate",
        "instructions": [
            "Stand facing a low step or bench.",
            "Step up with one foot and bring the other to meet it.",
            "Step down and alternate the leading leg.",
        ],
        "tips": ["Use a rail or wall for balance."],
    },
    {
        "name": "Kettlebell Deadlift",
        "primary_muscles": ["hamstrings", "glutes"],
        "secondary_muscles": ["back", "core"],
        "equipment_required": ["kettlebell"],
        "difficulty": "intermediate",
        "instructions": [
            "Stand with the kettlebell between your feet.",
            "Hinge at the hips and grip the handle with a flat back.",
            "Stand up by driving hips forward.",
        ],
        "tips": ["Keep the weight close to your body."],
    },
    {
        "name": "Seated Marching",
        "primary_muscles": ["full_body"],
        "secondary_muscles": ["core"],
        "equipment_required": ["none"],
        "difficulty": "beginner",
        "instructions": [
            "Sit tall near the front of a chair.",
            "Lift one knee, lower it, and alternate at a steady pace.",
            "Swing your arms to raise the heart rate.",
        ],
        "tips": ["Breathe steadily throughout."],
    },
    {
        "name": "Lat Pulldown",
        "primary_muscles": ["back"],
        "secondary_muscles": ["biceps"],
        "equipment_required": ["cable_machine"],
        "difficulty": "intermediate",
        "instructions": [
            "Sit at the machine and grip the bar wider than shoulder width.",
            "Pull the bar to your upper chest.",
            "Let it rise slowly.",
        ],
        "tips": ["Avoid leaning far back."],
    },
    {
        "name": "Plank",
        "primary_muscles": ["core"],
        "secondary_muscles": ["shoulders"],
        "equipment_required": ["none"],
        "difficulty": "intermediate",
        "instructions": [
            "Rest on forearms and toes with elbows under shoulders.",
            "Hold a straight line from head to heels.",
        ],
        "tips": ["Drop to your knees to make it easier."],
    },
]


def default_exercise_id(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"default-{slug}"
