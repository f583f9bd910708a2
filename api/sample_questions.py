"""
api/sample_questions.py — built-in question bank used when Supabase is not configured.

Rows use the shapes found in the question table (plain option lists,
{id, text} lists and keyed maps) and are normalized on load.
"""

SAMPLE_QUESTIONS = [
    {
        "id": "cs-001",
        "subject": "CS",
        "question_text": "Which data structure gives O(1) average lookup by key?",
        "question_type": "MCQ",
        "options": ["Linked list", "Hash table", "Binary heap", "Stack"],
        "correct_answer": "B",
        "marks": 1,
        "negative_marks": 0.33,
        "explanation": "Hash tables map keys to buckets in constant expected time.",
    },
    {
        "id": "cs-002",
        "subject": "CS",
        "question_text": "The worst-case time complexity of quicksort on n elements is",
        "question_type": "MCQ",
        "options": [
            {"id": "A", "text": "O(n log n)"},
            {"id": "B", "text": "O(n)"},
            {"id": "C", "text": "O(n^2)"},
            {"id": "D", "text": "O(log n)"},
        ],
        "correct_answer": "C",
        "marks": 2,
        "negative_marks": 0.66,
        "explanation": "An adversarial pivot choice yields quadratic behaviour.",
    },
    {
        "id": "cs-003",
        "subject": "CS",
        "question_text": "How many edges does a spanning tree of a connected graph with 12 vertices have?",
        "question_type": "NAT",
        "options": None,
        "correct_answer": 11,
        "marks": 1,
        "explanation": "A tree on n vertices has n - 1 edges.",
    },
    {
        "id": "cs-004",
        "subject": "CS",
        "question_text": "Which page replacement policy can suffer from Belady's anomaly?",
        "question_type": "MCQ",
        "options": {
            "A": "LRU",
            "B": {"text": "FIFO", "image": None},
            "C": "Optimal",
            "D": "LFU with aging",
        },
        "correct_answer": "B",
        "marks": 2,
        "explanation": "Stack algorithms (LRU, OPT) are immune; FIFO is not.",
    },
    {
        "id": "cs-005",
        "subject": "CS",
        "question_text": "Number of distinct binary search trees with 4 keys:",
        "question_type": "NAT",
        "correct_answer": "14",
        "marks": 2,
        "explanation": "The 4th Catalan number is 14.",
    },
    {
        "id": "ga-001",
        "subject": "GA",
        "question_text": "Choose the word most similar in meaning to 'laconic'.",
        "question_type": "MCQ",
        "options": ["Verbose", "Terse", "Cheerful", "Lazy"],
        "correct_answer": "B",
        "marks": 1,
        "explanation": "Laconic means using very few words.",
    },
    {
        "id": "ga-002",
        "subject": "GA",
        "question_text": "If 3 workers finish a job in 8 days, how many days do 4 workers need?",
        "question_type": "NAT",
        "correct_answer": "6",
        "marks": 1,
        "explanation": "Work = 24 worker-days; 24 / 4 = 6.",
    },
    {
        "id": "ec-001",
        "subject": "EC",
        "question_text": "The Nyquist rate for a signal band-limited to 4 kHz is (in kHz)",
        "question_type": "NAT",
        "correct_answer": "8",
        "marks": 1,
        "explanation": "Nyquist rate is twice the highest frequency.",
    },
    {
        "id": "ec-002",
        "subject": "EC",
        "question_text": "An ideal op-amp has input impedance",
        "question_type": "MCQ",
        "options": ["Zero", "Infinite", "50 ohm", "1 kohm"],
        "correct_answer": "B",
        "marks": 1,
        "negative_marks": 0.33,
        "explanation": "Ideal op-amps draw no input current.",
    },
]
