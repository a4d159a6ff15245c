"""
Database models and connection for SkillQuest
Uses PostgreSQL with SQLAlchemy ORM
"""

from sqlalchemy import create_engine, Column, String, Integer, Date, DateTime, Boolean, Text, JSON
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from datetime import datetime

from config import DATABASE_URL

# SQLite needs cross-thread access when used behind the API
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# ============================================================================
# SKILL TABLES
# ============================================================================

class UserSkill(Base):
    """Skills a user is leveling up"""
    __tablename__ = "user_skills"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    color = Column(String, nullable=False)
    level = Column(Integer, default=1, nullable=False)
    experience = Column(Integer, default=0, nullable=False)          # XP inside current level
    experience_to_next = Column(Integer, default=100, nullable=False)
    total_experience = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Mission(Base):
    """Missions attached to a skill - template or AI generated"""
    __tablename__ = "missions"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    skill_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    difficulty = Column(String, nullable=False)  # Easy, Medium, Hard, Expert
    experience = Column(Integer, nullable=False)
    time_limit = Column(Integer, nullable=False)  # minutes
    is_completed = Column(Boolean, default=False, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False)
    is_ai_generated = Column(Boolean, default=False, nullable=False)
    specific_tasks = Column(JSON, default=list, nullable=False)
    personalized_tips = Column(JSON, default=list, nullable=False)
    learning_resources = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)


# ============================================================================
# PROGRESS TABLES
# ============================================================================

class UserProgress(Base):
    """Account-wide Total Level, counters and streaks"""
    __tablename__ = "user_progress"

    user_id = Column(String, primary_key=True, index=True)
    total_level = Column(Integer, default=1, nullable=False)
    total_experience = Column(Integer, default=0, nullable=False)
    missions_completed = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    # {skill_id: xp} - account XP each skill's level-ups produced
    skill_level_up_contributions = Column(JSON, default=dict, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)


class StreakState(Base):
    """Calendar date of the last streak increment"""
    __tablename__ = "streak_state"

    user_id = Column(String, primary_key=True, index=True)
    last_streak_date = Column(String, nullable=True)  # YYYY-MM-DD format


# ============================================================================
# CHALLENGE TABLES
# ============================================================================

class Challenge(Base):
    """Time-boxed challenges users join together"""
    __tablename__ = "challenges"

    id = Column(String, primary_key=True, index=True)
    creator_id = Column(String, index=True, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String, nullable=False)  # quest, sprint, marathon, daily
    duration = Column(Integer, nullable=False)  # days
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    privacy = Column(String, default="public", nullable=False)
    max_participants = Column(Integer, nullable=True)
    difficulty = Column(String, nullable=True)  # easy, medium, hard
    status = Column(String, default="active", nullable=False)
    skills = Column(JSON, default=list, nullable=False)  # skill names
    rules = Column(JSON, default=list, nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    reward_xp = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ChallengeParticipant(Base):
    """One row per user per challenge; leaving keeps the row inactive"""
    __tablename__ = "challenge_participants"

    challenge_id = Column(String, primary_key=True, index=True)
    user_id = Column(String, primary_key=True, index=True)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    progress_percentage = Column(Integer, default=0, nullable=False)
    tasks_completed = Column(Integer, default=0, nullable=False)
    total_tasks = Column(Integer, default=0, nullable=False)
    last_activity = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    completion_status = Column(String, default="in_progress", nullable=False)


# ============================================================================
# Database initialization
# ============================================================================

def init_db():
    """Create all tables"""
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created successfully")


if __name__ == "__main__":
    # Test database connection
    print(f"Connecting to: {DATABASE_URL}")
    init_db()
